"""Teacher-initiated redemption of real-world rewards."""

import uuid
from datetime import datetime, timezone

from halaqa.core.exceptions import InsufficientFundsError, NotFoundError
from halaqa.core.logging import get_logger
from halaqa.models.catalog import Reward
from halaqa.models.ledger import BALANCE_FIELD, USERS_COLLECTION, LedgerRecord
from halaqa.models.redemption import REDEMPTIONS_COLLECTION, RedemptionRecord
from halaqa.services import catalog
from halaqa.services import points as points_service
from halaqa.store.base import Append, Snapshot, Store, TransactionPlan

log = get_logger(__name__)


async def check_redemption(store: Store, student_id: str, reward_id: str) -> dict:
    """Precheck for the confirmation prompt: not transactional."""
    reward = catalog.get_reward(reward_id)
    ledger = await points_service.get_ledger(store, student_id)
    return {"reward": reward, "balance": ledger.balance, "can_afford": ledger.balance >= reward.cost}


def plan_redemption(current: Snapshot, record: RedemptionRecord) -> TransactionPlan:
    """Deduct the cost and write the audit record in the same commit."""
    if current is None:
        raise NotFoundError("Ledger record not found")
    ledger = LedgerRecord.from_snapshot(None, current)
    if ledger.balance < record.cost:
        raise InsufficientFundsError(ledger.balance, record.cost)
    name = current.get("name")
    stored = record.model_copy(update={"student_name": name if isinstance(name, str) else ""})
    return TransactionPlan(
        updates={BALANCE_FIELD: ledger.balance - record.cost},
        appends=[Append(REDEMPTIONS_COLLECTION, stored.to_store(), key=record.id)],
    )


async def redeem_reward(
    store: Store,
    student_id: str,
    reward_id: str,
    actor_id: str | None = None,
    mirrored_balance: int | None = None,
) -> RedemptionRecord:
    """
    Redeem reward_id for student_id. Rejects with InsufficientFundsError before any write
    when the (possibly mirrored) balance is short; the debit and the redemption record then
    commit atomically, re-checking the stored balance.
    """
    reward: Reward = catalog.get_reward(reward_id)
    if mirrored_balance is None:
        mirrored_balance = (await points_service.get_ledger(store, student_id)).balance
    if mirrored_balance < reward.cost:
        raise InsufficientFundsError(mirrored_balance, reward.cost)

    record = RedemptionRecord(
        id=uuid.uuid4().hex,
        student_id=student_id,
        reward_id=reward.id,
        reward_name=reward.name,
        cost=reward.cost,
        redeemed_by=actor_id,
        created_at=datetime.now(timezone.utc),
    )
    stored: list[RedemptionRecord] = []

    def _plan(current: Snapshot) -> TransactionPlan:
        plan = plan_redemption(current, record)
        stored[:] = [RedemptionRecord(id=record.id, **plan.appends[0].record)]
        return plan

    await store.run_transaction(USERS_COLLECTION, student_id, _plan)
    log.info("reward_redeemed", student_id=student_id, reward_id=reward.id, cost=reward.cost, actor_id=actor_id)
    return stored[0]


async def list_redemptions(store: Store, student_id: str, limit: int = 50) -> list[RedemptionRecord]:
    """Redemption history for a student, newest first."""
    docs = await store.query(REDEMPTIONS_COLLECTION, where={"student_id": student_id})
    # reversed first so equal timestamps keep the later insert on top
    records = [RedemptionRecord.from_store(d) for d in reversed(docs)]
    records.sort(key=lambda r: r.created_at, reverse=True)
    return records[:limit]
