"""Document store interface: keyed records, atomic updates, optimistic transactions, change feeds.

Records are plain dicts. ``_id`` holds the key and ``_version`` a counter bumped on
every write; ``run_transaction`` commits only if ``_version`` is unchanged since the read.
Stored values are not validated here: readers coerce.
"""

import asyncio
import copy
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from halaqa.core.config import get_settings
from halaqa.core.exceptions import TransientStoreFailure
from halaqa.core.logging import get_logger

log = get_logger(__name__)

VERSION_FIELD = "_version"

Snapshot = dict[str, Any] | None
OnChange = Callable[[Snapshot], None]
OnQueryChange = Callable[[list[dict[str, Any]]], None]
OnError = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class Increment:
    """Field transform: add ``amount``. A missing or non-numeric field counts as 0."""
    amount: int | float


@dataclass(frozen=True)
class Append:
    """A new record inserted into ``collection`` in the same commit."""
    collection: str
    record: dict[str, Any]
    key: str | None = None


@dataclass
class TransactionPlan:
    """Outcome of a transaction function: field updates plus records to append."""
    updates: dict[str, Any] = field(default_factory=dict)
    appends: list[Append] = field(default_factory=list)


TransactionFn = Callable[[Snapshot], TransactionPlan]


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def apply_updates(record: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Apply field updates (dotted paths allowed) to ``record`` in place and return it."""
    for path, value in updates.items():
        *parents, leaf = path.split(".")
        target = record
        for part in parents:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        if isinstance(value, Increment):
            current = target.get(leaf)
            target[leaf] = (current + value.amount) if is_number(current) else value.amount
        else:
            target[leaf] = copy.deepcopy(value)
    return record


def version_of(snapshot: Snapshot) -> int:
    if snapshot is None:
        return 0
    v = snapshot.get(VERSION_FIELD, 0)
    return v if isinstance(v, int) else 0


class Store(ABC):
    def __init__(self, max_attempts: int | None = None, backoff_ms: int | None = None) -> None:
        settings = get_settings()
        self.max_attempts = max_attempts or settings.transaction_max_attempts
        self.backoff_ms = settings.transaction_backoff_ms if backoff_ms is None else backoff_ms

    @abstractmethod
    async def get(self, collection: str, key: str) -> Snapshot:
        """Return the record or None if it does not exist."""
        ...

    @abstractmethod
    async def update(self, collection: str, key: str, fields: dict[str, Any], upsert: bool = True) -> None:
        """Atomically apply field updates to one record. Raises NotFoundError if missing and not upsert."""
        ...

    @abstractmethod
    async def append_new(self, collection: str, record: dict[str, Any]) -> str:
        """Insert a new record with a generated key; return the key."""
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Equality filter, optional ordering (records lacking a numeric ``order_by`` are excluded), limit."""
        ...

    @abstractmethod
    async def subscribe(
        self, collection: str, key: str, on_change: OnChange, on_error: OnError | None = None
    ) -> Unsubscribe:
        """Deliver the current snapshot now and after every committed change."""
        ...

    @abstractmethod
    async def subscribe_query(
        self,
        collection: str,
        order_by: str,
        limit: int,
        on_change: OnQueryChange,
        on_error: OnError | None = None,
    ) -> Unsubscribe:
        """Deliver the top ``limit`` records by ``order_by`` descending, now and after every change."""
        ...

    @abstractmethod
    async def _read_versioned(self, collection: str, key: str) -> Snapshot:
        """Read the current record (a private copy) for a transaction attempt."""
        ...

    @abstractmethod
    async def _commit(self, collection: str, key: str, expected_version: int, plan: TransactionPlan) -> bool:
        """Write plan iff the record is still at expected_version. False on conflict."""
        ...

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def run_transaction(self, collection: str, key: str, fn: TransactionFn) -> Snapshot:
        """
        Optimistic read-modify-write. ``fn`` maps the current snapshot to a TransactionPlan;
        anything it raises aborts with no write and no retry. On a version conflict the whole
        read/decide/commit cycle is retried up to ``max_attempts`` times, then
        TransientStoreFailure is raised. Returns the snapshot as committed.
        """
        for attempt in range(1, self.max_attempts + 1):
            current = await self._read_versioned(collection, key)
            expected = version_of(current)
            plan = fn(copy.deepcopy(current))
            if not plan.updates and not plan.appends:
                return current
            if await self._commit(collection, key, expected, plan):
                committed = apply_updates(copy.deepcopy(current) if current else {"_id": key}, plan.updates)
                committed[VERSION_FIELD] = expected + 1
                return committed
            log.debug("transaction_conflict", collection=collection, key=key, attempt=attempt)
            if attempt < self.max_attempts and self.backoff_ms:
                await asyncio.sleep(self.backoff_ms * attempt / 1000)
        log.warning("transaction_retries_exhausted", collection=collection, key=key, attempts=self.max_attempts)
        raise TransientStoreFailure(
            "Too much contention, try again",
            details={"collection": collection, "key": key, "attempts": self.max_attempts},
        )


def get_store() -> Store:
    settings = get_settings()
    if settings.store_backend == "mongo":
        from halaqa.store.mongo import MongoStore
        return MongoStore()
    from halaqa.store.memory import MemoryStore
    return MemoryStore()
