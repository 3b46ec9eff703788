from halaqa.models.catalog import Reward, StoreItem, Tier
from halaqa.models.leaderboard import LeaderboardEntry
from halaqa.models.ledger import EquipSlot, Equipped, LedgerRecord
from halaqa.models.redemption import RedemptionRecord

__all__ = [
    "EquipSlot",
    "Equipped",
    "LedgerRecord",
    "LeaderboardEntry",
    "RedemptionRecord",
    "Reward",
    "StoreItem",
    "Tier",
]
