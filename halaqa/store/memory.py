"""In-process store: dict-backed, single event loop. Used for tests and local development."""

import asyncio
import copy
import uuid
from typing import Any

from halaqa.core.exceptions import NotFoundError
from halaqa.core.logging import get_logger
from halaqa.store.base import (
    VERSION_FIELD,
    OnChange,
    OnError,
    OnQueryChange,
    Snapshot,
    Store,
    TransactionPlan,
    Unsubscribe,
    apply_updates,
    is_number,
    version_of,
)

log = get_logger(__name__)


class MemoryStore(Store):
    def __init__(self, max_attempts: int | None = None, backoff_ms: int | None = 0) -> None:
        super().__init__(max_attempts=max_attempts, backoff_ms=backoff_ms)
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._watchers: dict[tuple[str, str], list[OnChange]] = {}
        self._query_watchers: dict[str, list[tuple[str, int, OnQueryChange]]] = {}

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._data.setdefault(collection, {})

    def seed(self, collection: str, key: str, record: dict[str, Any]) -> None:
        """Write a raw record as-is, bypassing update semantics (fixtures, legacy data)."""
        doc = copy.deepcopy(record)
        doc["_id"] = key
        self._collection(collection)[key] = doc
        self._notify(collection, key)

    async def get(self, collection: str, key: str) -> Snapshot:
        doc = self._collection(collection).get(key)
        return copy.deepcopy(doc) if doc is not None else None

    async def update(self, collection: str, key: str, fields: dict[str, Any], upsert: bool = True) -> None:
        docs = self._collection(collection)
        doc = docs.get(key)
        if doc is None:
            if not upsert:
                raise NotFoundError(f"{collection}/{key} not found")
            doc = {"_id": key}
            docs[key] = doc
        apply_updates(doc, fields)
        doc[VERSION_FIELD] = version_of(doc) + 1
        self._notify(collection, key)

    async def append_new(self, collection: str, record: dict[str, Any]) -> str:
        key = uuid.uuid4().hex
        self._insert(collection, key, record)
        self._notify(collection, key)
        return key

    def _insert(self, collection: str, key: str, record: dict[str, Any]) -> None:
        doc = copy.deepcopy(record)
        doc["_id"] = key
        self._collection(collection)[key] = doc

    async def query(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return self._run_query(collection, where, order_by, descending, limit)

    def _run_query(
        self,
        collection: str,
        where: dict[str, Any] | None,
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ) -> list[dict[str, Any]]:
        docs = list(self._collection(collection).values())
        if where:
            docs = [d for d in docs if all(d.get(k) == v for k, v in where.items())]
        if order_by:
            docs = [d for d in docs if is_number(d.get(order_by))]
            # stable sorts: key ascending breaks ties
            docs.sort(key=lambda d: d["_id"])
            docs.sort(key=lambda d: d[order_by], reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return copy.deepcopy(docs)

    async def subscribe(
        self, collection: str, key: str, on_change: OnChange, on_error: OnError | None = None
    ) -> Unsubscribe:
        watchers = self._watchers.setdefault((collection, key), [])
        watchers.append(on_change)
        on_change(await self.get(collection, key))

        def unsubscribe() -> None:
            if on_change in watchers:
                watchers.remove(on_change)

        return unsubscribe

    async def subscribe_query(
        self,
        collection: str,
        order_by: str,
        limit: int,
        on_change: OnQueryChange,
        on_error: OnError | None = None,
    ) -> Unsubscribe:
        entry = (order_by, limit, on_change)
        watchers = self._query_watchers.setdefault(collection, [])
        watchers.append(entry)
        on_change(self._run_query(collection, None, order_by, True, limit))

        def unsubscribe() -> None:
            if entry in watchers:
                watchers.remove(entry)

        return unsubscribe

    async def _read_versioned(self, collection: str, key: str) -> Snapshot:
        snapshot = await self.get(collection, key)
        # yield as a remote round trip would, so concurrent transactions interleave
        await asyncio.sleep(0)
        return snapshot

    async def _commit(self, collection: str, key: str, expected_version: int, plan: TransactionPlan) -> bool:
        docs = self._collection(collection)
        doc = docs.get(key)
        if version_of(doc) != expected_version:
            return False
        if doc is None:
            doc = {"_id": key}
            docs[key] = doc
        apply_updates(doc, plan.updates)
        doc[VERSION_FIELD] = expected_version + 1
        appended = []
        for append in plan.appends:
            new_key = append.key or uuid.uuid4().hex
            self._insert(append.collection, new_key, append.record)
            appended.append((append.collection, new_key))
        self._notify(collection, key)
        for coll, new_key in appended:
            self._notify(coll, new_key)
        return True

    def _notify(self, collection: str, key: str) -> None:
        doc = self._collection(collection).get(key)
        for on_change in list(self._watchers.get((collection, key), [])):
            self._deliver(on_change, copy.deepcopy(doc))
        for order_by, limit, on_change in list(self._query_watchers.get(collection, [])):
            self._deliver(on_change, self._run_query(collection, None, order_by, True, limit))

    @staticmethod
    def _deliver(callback, payload) -> None:
        try:
            callback(payload)
        except Exception:
            log.exception("subscriber_callback_failed")
