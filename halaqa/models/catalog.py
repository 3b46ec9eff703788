from enum import Enum

from pydantic import BaseModel

from halaqa.models.ledger import EquipSlot


class Tier(str, Enum):
    common = "common"
    rare = "rare"
    legendary = "legendary"


class StoreItem(BaseModel):
    """Cosmetic bought with points; equipped into the slot matching its type."""
    id: str
    type: EquipSlot
    name: str
    cost: int
    tier: Tier


class Reward(BaseModel):
    """Real-world reward redeemed by a teacher; not an inventory item."""
    id: str
    name: str
    cost: int
