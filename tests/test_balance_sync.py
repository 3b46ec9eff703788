"""Live balance mirror: coercion, propagation, lifecycle, failure."""

import pytest

from halaqa.core.numbers import safe_int, safe_number
from halaqa.services import points as points_service
from halaqa.services.balance_sync import LOAD_ERROR_MESSAGE, BalanceSync
from halaqa.store.memory import MemoryStore


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 0), ("NaN", 0), ("abc", 0), (float("nan"), 0), (float("inf"), 0), ("42", 42), (7.9, 7), (-3, 0), ({}, 0)],
)
def test_safe_int(raw, expected):
    assert safe_int(raw) == expected


def test_safe_number_never_nan():
    assert safe_number("  12.5 ") == 12.5
    assert safe_number("NaN") == 0.0


async def test_no_user_gives_zero_mirror_without_subscription(store):
    sync = BalanceSync(store, None)
    await sync.start()
    assert sync.state.loading is False
    assert sync.state.balance == 0
    assert not sync.active


@pytest.mark.parametrize("raw_balance", ["NaN", None, "garbage"])
async def test_mirror_repairs_non_numeric_balance(store, raw_balance):
    store.seed("users", "s1", {"points": raw_balance, "total_points": 12, "inventory": {"a": True}})
    async with BalanceSync(store, "s1") as sync:
        assert sync.state.balance == 0
        assert sync.state.lifetime_total == 12
        assert sync.state.inventory == {"a"}
        assert sync.state.error is None


async def test_missing_record_mirrors_zero_state(store):
    async with BalanceSync(store, "ghost") as sync:
        assert sync.state.loading is False
        assert sync.state.balance == 0


async def test_mirror_follows_operations(store):
    store.seed("users", "s1", {"points": 100, "total_points": 100})
    published = []
    sync = BalanceSync(store, "s1")
    sync.add_observer(published.append)
    await sync.start()

    await points_service.credit(store, "s1", 20)
    assert sync.state.balance == 120
    await points_service.debit_and_grant(store, "s1", 60, "frame_gold")
    assert sync.state.balance == 60
    assert sync.state.inventory == {"frame_gold"}
    await points_service.equip(store, "s1", "frame", "frame_gold")
    assert sync.state.equipped.frame == "frame_gold"
    assert sync.state.lifetime_total == 120
    assert published[0].loading is True
    assert published[-1].balance == 60
    sync.stop()


async def test_can_afford_uses_mirror(store):
    store.seed("users", "s1", {"points": 50, "total_points": 50})
    async with BalanceSync(store, "s1") as sync:
        assert sync.can_afford(50)
        assert not sync.can_afford(51)


async def test_stop_ends_updates(store):
    store.seed("users", "s1", {"points": 5, "total_points": 5})
    sync = BalanceSync(store, "s1")
    await sync.start()
    sync.stop()
    await points_service.credit(store, "s1", 10)
    assert sync.state.balance == 5


async def test_switch_user_resubscribes(store):
    store.seed("users", "a", {"points": 1, "total_points": 1})
    store.seed("users", "b", {"points": 2, "total_points": 2})
    sync = BalanceSync(store, "a")
    await sync.start()
    await sync.switch_user("b")
    assert sync.state.balance == 2
    await points_service.credit(store, "a", 100)
    assert sync.state.balance == 2
    await points_service.credit(store, "b", 3)
    assert sync.state.balance == 5
    sync.stop()


class _ErrorCapturingStore(MemoryStore):
    def __init__(self):
        super().__init__(backoff_ms=0)
        self.error_handlers = []

    async def subscribe(self, collection, key, on_change, on_error=None):
        self.error_handlers.append(on_error)
        return await super().subscribe(collection, key, on_change, on_error)


async def test_subscription_error_sets_flag_and_stops():
    store = _ErrorCapturingStore()
    store.seed("users", "s1", {"points": 10, "total_points": 10})
    sync = BalanceSync(store, "s1")
    await sync.start()

    store.error_handlers[-1](RuntimeError("permission denied"))
    assert sync.state.error == LOAD_ERROR_MESSAGE
    assert sync.state.loading is False
    assert sync.state.balance == 10
    assert not sync.active

    await points_service.credit(store, "s1", 5)
    assert sync.state.balance == 10

    await sync.restart()
    assert sync.state.error is None
    assert sync.state.balance == 15
    sync.stop()
