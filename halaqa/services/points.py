"""
Points ledger operations. Every write to points, total_points or inventory goes through here.

equip is a single atomic field update. credit, debit_and_grant and repair go through
run_transaction so their audit entries commit with them; the spend and repair decisions
live in pure plan_* functions.
"""

import re

from halaqa.core.audit import audit_entry
from halaqa.core.exceptions import AlreadyOwnedError, BadRequestError, InsufficientFundsError, NotFoundError
from halaqa.core.logging import get_logger
from halaqa.models.ledger import (
    BALANCE_FIELD,
    INVENTORY_FIELD,
    ITEM_ID_PATTERN,
    LIFETIME_FIELD,
    USERS_COLLECTION,
    EquipSlot,
    LedgerRecord,
    corrupt_fields,
    inventory_map,
)
from halaqa.store.base import Increment, Snapshot, Store, TransactionPlan

log = get_logger(__name__)

_ITEM_ID_RE = re.compile(ITEM_ID_PATTERN)

# keeps balances well inside int64 in the database
MAX_CREDIT_AMOUNT = 100_000


def _require_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise BadRequestError(f"{name} must be an integer", details={name: value})
    return value


def _require_item_id(item_id: str) -> str:
    if not isinstance(item_id, str) or not _ITEM_ID_RE.match(item_id):
        raise BadRequestError("Invalid item id", details={"item_id": item_id})
    return item_id


async def get_ledger(store: Store, user_id: str) -> LedgerRecord:
    """Current ledger for user (zero state if no record)."""
    snapshot = await store.get(USERS_COLLECTION, user_id)
    return LedgerRecord.from_snapshot(user_id, snapshot)


async def credit(store: Store, user_id: str, amount: int, actor_id: str | None = None, reason: str = "award") -> bool:
    """
    Add amount to balance and lifetime total, and record the audit entry, in one commit.
    Returns False (no write) for amount <= 0. Not deduplicated: callers must not
    credit the same event twice.
    """
    amount = _require_int(amount, "amount")
    if amount <= 0:
        log.warning("credit_skipped", user_id=user_id, amount=amount)
        return False
    if amount > MAX_CREDIT_AMOUNT:
        raise BadRequestError("amount too large", details={"amount": amount, "max": MAX_CREDIT_AMOUNT})
    plan = TransactionPlan(
        updates={BALANCE_FIELD: Increment(amount), LIFETIME_FIELD: Increment(amount)},
        appends=[audit_entry(actor_id, "points_credited", "ledger", user_id, {"amount": amount, "reason": reason})],
    )
    await store.run_transaction(USERS_COLLECTION, user_id, lambda current: plan)
    log.info("points_credited", user_id=user_id, amount=amount, reason=reason, actor_id=actor_id)
    return True


def plan_debit_and_grant(current: Snapshot, cost: int, item_id: str) -> TransactionPlan:
    """Decide a spend against the stored record. Raises a typed rejection or returns the writes."""
    if current is None:
        raise NotFoundError("Ledger record not found")
    record = LedgerRecord.from_snapshot(None, current)
    if record.owns(item_id):
        raise AlreadyOwnedError(item_id)
    if record.balance < cost:
        raise InsufficientFundsError(record.balance, cost)
    # absolute value: the version check guarantees the balance read above is still current
    updates = {BALANCE_FIELD: record.balance - cost}
    if isinstance(current.get(INVENTORY_FIELD), dict):
        updates[f"{INVENTORY_FIELD}.{item_id}"] = True
    else:
        # a dotted write would replace a list inventory and drop what it holds
        updates[INVENTORY_FIELD] = inventory_map(record.inventory | {item_id})
    return TransactionPlan(updates=updates)


async def debit_and_grant(store: Store, user_id: str, cost: int, item_id: str) -> LedgerRecord:
    """
    Atomically deduct cost and add item_id to the inventory.

    Runs against current stored state, never a mirror: of any number of concurrent calls
    at most one grants a given item and the balance never goes negative. Raises
    NotFoundError, AlreadyOwnedError, InsufficientFundsError or TransientStoreFailure.
    Safe to re-invoke after a transient failure: a grant that did commit makes the retry
    fail with AlreadyOwnedError.
    """
    cost = _require_int(cost, "cost")
    if cost <= 0:
        raise BadRequestError("cost must be positive", details={"cost": cost})
    _require_item_id(item_id)
    try:
        committed = await store.run_transaction(
            USERS_COLLECTION, user_id, lambda current: plan_debit_and_grant(current, cost, item_id)
        )
    except (AlreadyOwnedError, InsufficientFundsError) as e:
        log.info("spend_rejected", user_id=user_id, item_id=item_id, cost=cost, code=e.code)
        raise
    log.info("points_spent", user_id=user_id, item_id=item_id, cost=cost)
    return LedgerRecord.from_snapshot(user_id, committed)


async def equip(store: Store, user_id: str, slot: EquipSlot, item_id: str) -> None:
    """Set the equipped item for a slot. Ownership is not checked."""
    slot = EquipSlot(slot)
    _require_item_id(item_id)
    await store.update(USERS_COLLECTION, user_id, {slot.field: item_id})
    log.info("item_equipped", user_id=user_id, slot=slot.value, item_id=item_id)


def plan_repair(current: Snapshot) -> TransactionPlan:
    """Rewrite corrupt numeric/inventory fields to their coerced values."""
    if current is None:
        raise NotFoundError("Ledger record not found")
    bad = corrupt_fields(current)
    record = LedgerRecord.from_snapshot(None, current)
    updates = {}
    if BALANCE_FIELD in bad:
        updates[BALANCE_FIELD] = record.balance
    lifetime = max(record.lifetime_total, record.balance)
    if LIFETIME_FIELD in bad or lifetime != record.lifetime_total:
        updates[LIFETIME_FIELD] = lifetime
    if INVENTORY_FIELD in bad:
        updates[INVENTORY_FIELD] = inventory_map(record.inventory)
    return TransactionPlan(updates=updates)


async def repair(store: Store, user_id: str, actor_id: str | None = None) -> dict:
    """Admin data repair. Returns the fields rewritten and the resulting ledger."""
    applied: list[str] = []

    def _plan(current: Snapshot) -> TransactionPlan:
        plan = plan_repair(current)
        applied[:] = sorted(plan.updates)
        if plan.updates:
            plan.appends.append(audit_entry(actor_id, "ledger_repaired", "ledger", user_id, {"fields": applied[:]}))
        return plan

    committed = await store.run_transaction(USERS_COLLECTION, user_id, _plan)
    fields = list(applied)
    if fields:
        log.warning("ledger_repaired", user_id=user_id, fields=fields)
    return {"repaired_fields": fields, "ledger": LedgerRecord.from_snapshot(user_id, committed)}
