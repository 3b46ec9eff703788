from fastapi import APIRouter, Depends

from halaqa.deps import Principal, get_store, require_admin
from halaqa.routers.points import ledger_out
from halaqa.services import points as points_service
from halaqa.store.base import Store

router = APIRouter()


@router.post("/ledger/{user_id}/repair")
async def admin_ledger_repair(
    user_id: str,
    user: Principal = Depends(require_admin),
    store: Store = Depends(get_store),
):
    """Admin: rewrite corrupt stored point values (non-numeric, negative) to safe values."""
    out = await points_service.repair(store, user_id, actor_id=user.user_id)
    return {"repaired_fields": out["repaired_fields"], **ledger_out(out["ledger"])}
