"""Per-user points ledger: balance, lifetime total, inventory, equipped cosmetics."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from halaqa.core.numbers import is_clean_int, safe_int

USERS_COLLECTION = "users"

# stored field names
BALANCE_FIELD = "points"
LIFETIME_FIELD = "total_points"
INVENTORY_FIELD = "inventory"

ITEM_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class EquipSlot(str, Enum):
    badge = "badge"
    frame = "frame"
    avatar = "avatar"

    @property
    def field(self) -> str:
        return f"equipped_{self.value}"


class Equipped(BaseModel):
    badge: str | None = None
    frame: str | None = None
    avatar: str | None = None

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any]) -> "Equipped":
        values = {}
        for slot in EquipSlot:
            v = snapshot.get(slot.field)
            values[slot.value] = v if isinstance(v, str) and v else None
        return cls(**values)


def inventory_items(raw: Any) -> set[str]:
    """Owned item ids. Stored as a map item_id -> true; legacy lists of ids are still owned."""
    if isinstance(raw, dict):
        return {k for k, v in raw.items() if v}
    if isinstance(raw, (list, tuple)):
        return {v for v in raw if isinstance(v, str) and v}
    return set()


def inventory_map(items: set[str]) -> dict[str, bool]:
    return {item_id: True for item_id in sorted(items)}


class LedgerRecord(BaseModel):
    user_id: str | None = None
    balance: int = 0
    lifetime_total: int = 0
    inventory: set[str] = Field(default_factory=set)
    equipped: Equipped = Field(default_factory=Equipped)

    @classmethod
    def from_snapshot(cls, user_id: str | None, snapshot: dict[str, Any] | None) -> "LedgerRecord":
        """Coerce a raw stored record; a missing record is the zero state."""
        if snapshot is None:
            return cls(user_id=user_id)
        return cls(
            user_id=user_id,
            balance=safe_int(snapshot.get(BALANCE_FIELD)),
            lifetime_total=safe_int(snapshot.get(LIFETIME_FIELD)),
            inventory=inventory_items(snapshot.get(INVENTORY_FIELD)),
            equipped=Equipped.from_snapshot(snapshot),
        )

    def owns(self, item_id: str) -> bool:
        return item_id in self.inventory


def corrupt_fields(snapshot: dict[str, Any] | None) -> list[str]:
    """Stored fields whose values needed coercion (missing fields on a new record are not corrupt)."""
    if snapshot is None:
        return []
    bad = []
    for name in (BALANCE_FIELD, LIFETIME_FIELD):
        if name in snapshot and not is_clean_int(snapshot[name]):
            bad.append(name)
    inv = snapshot.get(INVENTORY_FIELD)
    if inv is not None and not isinstance(inv, dict):
        bad.append(INVENTORY_FIELD)
    return bad
