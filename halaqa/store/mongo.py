"""MongoDB store (motor). Requires a replica set: transactions and change streams."""

import asyncio
import uuid
from contextlib import contextmanager
from typing import Any, Awaitable, Callable

from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError

from halaqa.core.exceptions import NotFoundError, TransientStoreFailure
from halaqa.core.logging import get_logger
from halaqa.store.base import (
    VERSION_FIELD,
    Increment,
    OnChange,
    OnError,
    OnQueryChange,
    Snapshot,
    Store,
    TransactionPlan,
    Unsubscribe,
)

log = get_logger(__name__)

CHANGE_TYPES_WITH_DOCUMENT = ("insert", "update", "replace")


class _Conflict(Exception):
    pass


@contextmanager
def _translate_errors():
    try:
        yield
    except ConnectionFailure as e:
        raise TransientStoreFailure(f"Store unreachable: {e}") from e


_INF = float("inf")


def _is_finite_number(ref: str) -> dict[str, Any]:
    # NaN sorts below every number in BSON, so the -inf bound also rejects it
    return {"$and": [{"$isNumber": ref}, {"$gt": [ref, -_INF]}, {"$lt": [ref, _INF]}]}


def _update_pipeline(updates: dict[str, Any]) -> list[dict[str, Any]]:
    """Translate field updates to a pipeline update; increments treat non-finite or non-numbers as 0."""
    stage: dict[str, Any] = {}
    for path, value in updates.items():
        if isinstance(value, Increment):
            ref = f"${path}"
            stage[path] = {"$add": [{"$cond": [_is_finite_number(ref), ref, 0]}, value.amount]}
        else:
            stage[path] = {"$literal": value}
    stage[VERSION_FIELD] = {"$add": [{"$ifNull": [f"${VERSION_FIELD}", 0]}, 1]}
    return [{"$set": stage}]


def _order_filter(order_by: str) -> dict[str, Any]:
    # BSON sorts strings above numbers and NaN below them; keep corrupt values out of ordered reads
    return {order_by: {"$type": "number", "$gt": -_INF, "$lt": _INF}}


class MongoStore(Store):
    def __init__(self, max_attempts: int | None = None, backoff_ms: int | None = None) -> None:
        super().__init__(max_attempts=max_attempts, backoff_ms=backoff_ms)
        self._client = None
        self._db = None
        self._tasks: set[asyncio.Task] = set()

    async def open(self) -> None:
        from halaqa.db.init import init_db
        self._client, self._db = await init_db()

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._client is not None:
            self._client.close()

    def _coll(self, collection: str):
        if self._db is None:
            raise TransientStoreFailure("Store not connected")
        return self._db[collection]

    async def get(self, collection: str, key: str) -> Snapshot:
        with _translate_errors():
            return await self._coll(collection).find_one({"_id": key})

    async def update(self, collection: str, key: str, fields: dict[str, Any], upsert: bool = True) -> None:
        with _translate_errors():
            res = await self._coll(collection).update_one({"_id": key}, _update_pipeline(fields), upsert=upsert)
        if not upsert and res.matched_count == 0:
            raise NotFoundError(f"{collection}/{key} not found")

    async def append_new(self, collection: str, record: dict[str, Any]) -> str:
        key = uuid.uuid4().hex
        with _translate_errors():
            await self._coll(collection).insert_one({**record, "_id": key})
        return key

    async def query(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        flt = dict(where or {})
        if order_by:
            flt.update(_order_filter(order_by))
        cursor = self._coll(collection).find(flt)
        if order_by:
            cursor = cursor.sort([(order_by, -1 if descending else 1), ("_id", 1)])
        if limit is not None:
            cursor = cursor.limit(limit)
        with _translate_errors():
            return await cursor.to_list(length=limit)

    async def _read_versioned(self, collection: str, key: str) -> Snapshot:
        return await self.get(collection, key)

    async def _commit(self, collection: str, key: str, expected_version: int, plan: TransactionPlan) -> bool:
        coll = self._coll(collection)
        if expected_version == 0:
            flt = {"_id": key, VERSION_FIELD: {"$exists": False}}
        else:
            flt = {"_id": key, VERSION_FIELD: expected_version}
        pipeline = _update_pipeline(plan.updates)
        upsert = expected_version == 0
        try:
            with _translate_errors():
                if not plan.appends:
                    res = await coll.update_one(flt, pipeline, upsert=upsert)
                    return res.matched_count == 1 or res.upserted_id is not None
                async with await self._client.start_session() as session:
                    async with session.start_transaction():
                        res = await coll.update_one(flt, pipeline, upsert=upsert, session=session)
                        if res.matched_count == 0 and res.upserted_id is None:
                            raise _Conflict()
                        for append in plan.appends:
                            await self._coll(append.collection).insert_one(
                                {**append.record, "_id": append.key or uuid.uuid4().hex}, session=session
                            )
                return True
        except (_Conflict, DuplicateKeyError):
            return False
        except PyMongoError as e:
            if e.has_error_label("TransientTransactionError"):
                return False
            raise

    def _spawn(self, coro: Awaitable[None]) -> Unsubscribe:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    async def _watch(
        self,
        collection: str,
        pipeline: list[dict[str, Any]],
        start_at,
        on_event: Callable[[dict[str, Any]], Awaitable[None]],
        on_error: OnError | None,
    ) -> None:
        try:
            async with self._coll(collection).watch(
                pipeline, full_document="updateLookup", start_at_operation_time=start_at
            ) as stream:
                async for change in stream:
                    await on_event(change)
        except PyMongoError as e:
            log.warning("change_stream_failed", collection=collection, error=str(e))
            if on_error:
                on_error(e)

    async def _operation_time(self):
        with _translate_errors():
            reply = await self._db.command("ping")
        return reply.get("operationTime")

    async def subscribe(
        self, collection: str, key: str, on_change: OnChange, on_error: OnError | None = None
    ) -> Unsubscribe:
        # events after start_at are replayed; full-document delivery makes replays harmless
        start_at = await self._operation_time()
        on_change(await self.get(collection, key))

        async def on_event(change: dict[str, Any]) -> None:
            if change.get("operationType") in CHANGE_TYPES_WITH_DOCUMENT:
                on_change(change.get("fullDocument"))
            elif change.get("operationType") == "delete":
                on_change(None)

        pipeline = [{"$match": {"documentKey._id": key}}]
        return self._spawn(self._watch(collection, pipeline, start_at, on_event, on_error))

    async def subscribe_query(
        self,
        collection: str,
        order_by: str,
        limit: int,
        on_change: OnQueryChange,
        on_error: OnError | None = None,
    ) -> Unsubscribe:
        start_at = await self._operation_time()
        on_change(await self.query(collection, order_by=order_by, limit=limit))

        async def on_event(change: dict[str, Any]) -> None:
            try:
                on_change(await self.query(collection, order_by=order_by, limit=limit))
            except TransientStoreFailure as e:
                if on_error:
                    on_error(e)

        return self._spawn(self._watch(collection, [], start_at, on_event, on_error))
