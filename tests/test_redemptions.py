"""Reward redemption: precheck, atomic debit + history record."""

import pytest

from halaqa.core.exceptions import InsufficientFundsError, NotFoundError
from halaqa.services import points as points_service
from halaqa.services import redemptions as redemptions_service
from halaqa.store.base import TransactionPlan
from halaqa.store.memory import MemoryStore

pytestmark = pytest.mark.asyncio


async def test_redeem_debits_and_records(store):
    store.seed("users", "s1", {"name": "Yusuf", "points": 600, "total_points": 900})
    record = await redemptions_service.redeem_reward(store, "s1", "cert_500", actor_id="t1")

    assert record.cost == 500
    assert record.student_name == "Yusuf"
    assert record.redeemed_by == "t1"
    ledger = await points_service.get_ledger(store, "s1")
    assert ledger.balance == 100
    assert ledger.lifetime_total == 900
    stored = await store.get("redemptions", record.id)
    assert stored["reward_id"] == "cert_500"
    assert stored["student_id"] == "s1"


async def test_redeem_insufficient_precheck_writes_nothing(store):
    store.seed("users", "s1", {"points": 99, "total_points": 99})
    with pytest.raises(InsufficientFundsError):
        await redemptions_service.redeem_reward(store, "s1", "card_100")
    assert (await points_service.get_ledger(store, "s1")).balance == 99
    assert await store.query("redemptions") == []


async def test_redeem_stale_mirror_rechecked_in_transaction(store):
    store.seed("users", "s1", {"points": 150, "total_points": 150})
    with pytest.raises(InsufficientFundsError):
        await redemptions_service.redeem_reward(store, "s1", "gift_200", mirrored_balance=1000)
    assert (await points_service.get_ledger(store, "s1")).balance == 150
    assert await store.query("redemptions") == []


async def test_redeem_unknown_reward(store):
    store.seed("users", "s1", {"points": 1000, "total_points": 1000})
    with pytest.raises(NotFoundError):
        await redemptions_service.redeem_reward(store, "s1", "yacht")


async def test_redeem_missing_student(store):
    with pytest.raises(NotFoundError):
        await redemptions_service.redeem_reward(store, "ghost", "card_100", mirrored_balance=500)


class _FailingAppendStore(MemoryStore):
    """Commit fails as a whole when it carries appends."""

    async def _commit(self, collection, key, expected_version, plan: TransactionPlan):
        if plan.appends:
            raise RuntimeError("connection reset")
        return await super()._commit(collection, key, expected_version, plan)


async def test_redeem_failure_leaves_balance_untouched():
    store = _FailingAppendStore(backoff_ms=0)
    store.seed("users", "s1", {"points": 300, "total_points": 300})
    with pytest.raises(RuntimeError):
        await redemptions_service.redeem_reward(store, "s1", "day_off_300")
    assert (await points_service.get_ledger(store, "s1")).balance == 300
    assert await store.query("redemptions") == []


async def test_check_redemption(store):
    store.seed("users", "s1", {"points": 250, "total_points": 250})
    ok = await redemptions_service.check_redemption(store, "s1", "gift_200")
    short = await redemptions_service.check_redemption(store, "s1", "day_off_300")
    assert ok["can_afford"] is True
    assert short["can_afford"] is False
    assert short["balance"] == 250


async def test_list_redemptions_newest_first(store):
    store.seed("users", "s1", {"points": 1000, "total_points": 1000})
    first = await redemptions_service.redeem_reward(store, "s1", "card_100")
    second = await redemptions_service.redeem_reward(store, "s1", "gift_200")
    store.seed("users", "s2", {"points": 1000, "total_points": 1000})
    await redemptions_service.redeem_reward(store, "s2", "card_100")

    history = await redemptions_service.list_redemptions(store, "s1")
    assert [r.id for r in history] == [second.id, first.id]
    assert (await points_service.get_ledger(store, "s1")).balance == 700
