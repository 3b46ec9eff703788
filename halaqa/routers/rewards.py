from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from halaqa.deps import Principal, ensure_can_read, get_current_user, get_store, require_teacher
from halaqa.services import catalog
from halaqa.services import redemptions as redemptions_service
from halaqa.store.base import Store

router = APIRouter()


class RedeemRequest(BaseModel):
    reward_id: str


@router.get("")
async def rewards_list():
    return {"rewards": [r.model_dump() for r in catalog.REWARDS]}


@router.get("/{student_id}/check/{reward_id}")
async def rewards_check(
    student_id: str,
    reward_id: str,
    user: Principal = Depends(require_teacher),
    store: Store = Depends(get_store),
):
    """Can the student afford the reward? For the confirmation prompt; not a reservation."""
    out = await redemptions_service.check_redemption(store, student_id, reward_id)
    return {"reward": out["reward"].model_dump(), "balance": out["balance"], "can_afford": out["can_afford"]}


@router.post("/{student_id}/redeem")
async def rewards_redeem(
    student_id: str,
    body: RedeemRequest,
    user: Principal = Depends(require_teacher),
    store: Store = Depends(get_store),
):
    """Redeem a reward on the student's behalf: debit and history record commit together."""
    record = await redemptions_service.redeem_reward(store, student_id, body.reward_id, actor_id=user.user_id)
    return record.model_dump(mode="json")


@router.get("/{student_id}/history")
async def rewards_history(
    student_id: str,
    user: Principal = Depends(get_current_user),
    store: Store = Depends(get_store),
    limit: int = Query(50, ge=1, le=200),
):
    """Redemption history, newest first."""
    ensure_can_read(user, student_id)
    records = await redemptions_service.list_redemptions(store, student_id, limit=limit)
    return {"redemptions": [r.model_dump(mode="json") for r in records], "limit": limit}
