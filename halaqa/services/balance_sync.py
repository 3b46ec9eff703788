"""Live read-only mirror of one user's ledger, fed by the store's change feed."""

from typing import Callable

from pydantic import BaseModel, Field

from halaqa.core.logging import get_logger
from halaqa.models.ledger import USERS_COLLECTION, Equipped, LedgerRecord, corrupt_fields
from halaqa.store.base import Snapshot, Store, Unsubscribe

log = get_logger(__name__)

LOAD_ERROR_MESSAGE = "Failed to load points"


class BalanceMirror(BaseModel):
    balance: int = 0
    lifetime_total: int = 0
    inventory: set[str] = Field(default_factory=set)
    equipped: Equipped = Field(default_factory=Equipped)
    loading: bool = True
    error: str | None = None

    @classmethod
    def from_ledger(cls, ledger: LedgerRecord) -> "BalanceMirror":
        return cls(
            balance=ledger.balance,
            lifetime_total=ledger.lifetime_total,
            inventory=set(ledger.inventory),
            equipped=ledger.equipped,
            loading=False,
        )


Observer = Callable[[BalanceMirror], None]


class BalanceSync:
    """
    Subscribes to one ledger record and republishes a coerced mirror to local observers.

    A None user_id yields the zero mirror and no subscription. On a subscription error the
    mirror stops updating and ``state.error`` is set; there is no automatic retry, call
    ``restart()`` (or ``switch_user``) to re-subscribe. Operations never rely on this mirror
    being fresh.
    """

    def __init__(self, store: Store, user_id: str | None) -> None:
        self.store = store
        self.user_id = user_id
        self.state = BalanceMirror()
        self._observers: list[Observer] = []
        self._unsubscribe: Unsubscribe | None = None
        self._failed = False

    async def __aenter__(self) -> "BalanceSync":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        self.stop()

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def add_observer(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove

    async def start(self) -> None:
        self.stop()
        self._failed = False
        if not self.user_id:
            self._publish(BalanceMirror(loading=False))
            return
        self._publish(BalanceMirror(loading=True))
        user_id = self.user_id
        unsubscribe = await self.store.subscribe(
            USERS_COLLECTION,
            user_id,
            lambda snapshot: self._on_change(user_id, snapshot),
            self._on_error,
        )
        if self._failed:
            unsubscribe()
        else:
            self._unsubscribe = unsubscribe

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def restart(self) -> None:
        await self.start()

    async def switch_user(self, user_id: str | None) -> None:
        if user_id == self.user_id and self.active:
            return
        self.user_id = user_id
        await self.start()

    def can_afford(self, cost: int) -> bool:
        """Fast local precheck only; the spend itself re-checks stored state."""
        return not self.state.loading and self.state.balance >= cost

    def _on_change(self, user_id: str, snapshot: Snapshot) -> None:
        if self._failed or user_id != self.user_id:
            return
        bad = corrupt_fields(snapshot)
        if bad:
            log.warning("ledger_values_coerced", user_id=user_id, fields=bad)
        self._publish(BalanceMirror.from_ledger(LedgerRecord.from_snapshot(user_id, snapshot)))

    def _on_error(self, exc: Exception) -> None:
        log.error("balance_sync_failed", user_id=self.user_id, error=str(exc))
        self._failed = True
        self.stop()
        self._publish(self.state.model_copy(update={"loading": False, "error": LOAD_ERROR_MESSAGE}))

    def _publish(self, mirror: BalanceMirror) -> None:
        self.state = mirror
        for observer in list(self._observers):
            observer(mirror)
