import asyncio

import orjson
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from halaqa.core.streaming import sse_events
from halaqa.deps import Principal, ensure_can_read, get_current_user, get_store, require_teacher
from halaqa.models.ledger import ITEM_ID_PATTERN, EquipSlot, LedgerRecord
from halaqa.services import points as points_service
from halaqa.services import scoring
from halaqa.services.balance_sync import BalanceMirror, BalanceSync
from halaqa.store.base import Store

router = APIRouter()


class CreditRequest(BaseModel):
    amount: int = Field(..., gt=0, le=points_service.MAX_CREDIT_AMOUNT)
    reason: str = "award"


class AwardLogRequest(BaseModel):
    log_type: scoring.LogType = "activity"
    pages: float | int | str | None = 1


class EquipRequest(BaseModel):
    slot: EquipSlot
    item_id: str = Field(..., pattern=ITEM_ID_PATTERN)


def ledger_out(ledger: LedgerRecord) -> dict:
    return {
        "user_id": ledger.user_id,
        "balance": ledger.balance,
        "lifetime_total": ledger.lifetime_total,
        "inventory": sorted(ledger.inventory),
        "equipped": ledger.equipped.model_dump(),
    }


def _mirror_json(mirror: BalanceMirror) -> str:
    data = mirror.model_dump(mode="json")
    data["inventory"] = sorted(data["inventory"])
    return orjson.dumps(data).decode()


@router.get("/me")
async def points_me(user: Principal = Depends(get_current_user), store: Store = Depends(get_store)):
    """Return my balance, lifetime total, inventory and equipped items."""
    return ledger_out(await points_service.get_ledger(store, user.user_id))


@router.get("/me/stream")
async def points_me_stream(
    request: Request,
    user: Principal = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    """Live mirror of my ledger (Server-Sent Events). The stream ends after an error frame."""
    queue: asyncio.Queue = asyncio.Queue()
    sync = BalanceSync(store, user.user_id)
    sync.add_observer(queue.put_nowait)
    await sync.start()
    return StreamingResponse(
        sse_events(request, queue, _mirror_json, sync.stop, is_final=lambda m: m.error is not None),
        media_type="text/event-stream",
    )


@router.post("/me/equip")
async def points_equip(
    body: EquipRequest,
    user: Principal = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    """Equip an item into a slot (badge, frame or avatar)."""
    await points_service.equip(store, user.user_id, body.slot, body.item_id)
    return {"slot": body.slot.value, "item_id": body.item_id}


@router.get("/{user_id}")
async def points_for_user(
    user_id: str,
    user: Principal = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    """Teachers may view any student's ledger; students only their own."""
    ensure_can_read(user, user_id)
    return ledger_out(await points_service.get_ledger(store, user_id))


@router.post("/{student_id}/credit")
async def points_credit(
    student_id: str,
    body: CreditRequest,
    user: Principal = Depends(require_teacher),
    store: Store = Depends(get_store),
):
    """Award points to a student. Each call awards again: do not retry a successful award."""
    await points_service.credit(store, student_id, body.amount, actor_id=user.user_id, reason=body.reason)
    return ledger_out(await points_service.get_ledger(store, student_id))


@router.post("/{student_id}/award-log")
async def points_award_log(
    student_id: str,
    body: AwardLogRequest,
    user: Principal = Depends(require_teacher),
    store: Store = Depends(get_store),
):
    """Award points for an approved memorization/review log."""
    awarded = await scoring.award_for_log(store, student_id, body.log_type, body.pages, actor_id=user.user_id)
    return {"awarded": awarded, **ledger_out(await points_service.get_ledger(store, student_id))}
