from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from halaqa.deps import Principal, get_current_user, get_store
from halaqa.models.ledger import EquipSlot
from halaqa.routers.points import ledger_out
from halaqa.services import catalog
from halaqa.services import points as points_service
from halaqa.store.base import Store

router = APIRouter()


class PurchaseRequest(BaseModel):
    item_id: str


@router.get("/items")
async def store_items(type: EquipSlot | None = Query(None)):
    """List cosmetic items, optionally filtered by type."""
    return {"items": [item.model_dump() for item in catalog.list_items(type)]}


@router.post("/purchase")
async def store_purchase(
    body: PurchaseRequest,
    user: Principal = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    """Buy an item at its catalog price. 409 ALREADY_OWNED / INSUFFICIENT_FUNDS leave the ledger unchanged."""
    item = catalog.get_item(body.item_id)
    ledger = await points_service.debit_and_grant(store, user.user_id, item.cost, item.id)
    return {"item": item.model_dump(), **ledger_out(ledger)}
