"""Top-N by lifetime total, one-shot or live."""

from typing import Any, Callable

from halaqa.core.config import get_settings
from halaqa.core.logging import get_logger
from halaqa.core.numbers import safe_int
from halaqa.models.leaderboard import LeaderboardEntry, LeaderboardState
from halaqa.models.ledger import LIFETIME_FIELD, USERS_COLLECTION, Equipped
from halaqa.store.base import Store, Unsubscribe

log = get_logger(__name__)

DEFAULT_DISPLAY_NAME = "طالب"
LOAD_ERROR_MESSAGE = "Failed to load leaderboard"


def build_entries(snapshots: list[dict[str, Any]]) -> list[LeaderboardEntry]:
    """Rank ordered snapshots by position, dropping users with no lifetime points."""
    entries = []
    for doc in snapshots:
        total = safe_int(doc.get(LIFETIME_FIELD))
        if total <= 0:
            continue
        photo = doc.get("photo_url")
        entries.append(
            LeaderboardEntry(
                rank=len(entries) + 1,
                user_id=str(doc["_id"]),
                display_name=doc.get("name") or DEFAULT_DISPLAY_NAME,
                lifetime_total=total,
                photo_url=photo if isinstance(photo, str) else None,
                equipped=Equipped.from_snapshot(doc),
            )
        )
    return entries


def _size(size: int | None) -> int:
    return size or get_settings().leaderboard_size


async def top_students(store: Store, size: int | None = None) -> list[LeaderboardEntry]:
    docs = await store.query(USERS_COLLECTION, order_by=LIFETIME_FIELD, descending=True, limit=_size(size))
    return build_entries(docs)


class LeaderboardModel:
    """Live leaderboard. Independent of any BalanceSync: the two converge, they are not in lockstep."""

    def __init__(self, store: Store, size: int | None = None) -> None:
        self.store = store
        self.size = _size(size)
        self.entries: list[LeaderboardEntry] = []
        self.loading = True
        self.error: str | None = None
        self._observers: list[Callable[[LeaderboardState], None]] = []
        self._unsubscribe: Unsubscribe | None = None

    async def __aenter__(self) -> "LeaderboardModel":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        self.stop()

    def add_observer(self, observer: Callable[[LeaderboardState], None]) -> None:
        self._observers.append(observer)

    async def start(self) -> None:
        self.stop()
        self.error = None
        self._unsubscribe = await self.store.subscribe_query(
            USERS_COLLECTION, LIFETIME_FIELD, self.size, self._on_change, self._on_error
        )

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_change(self, docs: list[dict[str, Any]]) -> None:
        self.entries = build_entries(docs)
        self.loading = False
        self._publish()

    def _on_error(self, exc: Exception) -> None:
        log.error("leaderboard_subscription_failed", error=str(exc))
        self.loading = False
        self.error = LOAD_ERROR_MESSAGE
        self.stop()
        self._publish()

    @property
    def state(self) -> LeaderboardState:
        return LeaderboardState(entries=list(self.entries), loading=self.loading, error=self.error)

    def _publish(self) -> None:
        state = self.state
        for observer in list(self._observers):
            observer(state)
