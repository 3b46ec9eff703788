from datetime import datetime
from typing import Any

from pydantic import BaseModel

REDEMPTIONS_COLLECTION = "redemptions"


class RedemptionRecord(BaseModel):
    """Immutable audit entry: a real-world reward redeemed on a student's behalf."""
    id: str | None = None
    student_id: str
    student_name: str = ""
    reward_id: str
    reward_name: str = ""
    cost: int
    redeemed_by: str | None = None
    created_at: datetime

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(exclude={"id"})

    @classmethod
    def from_store(cls, doc: dict[str, Any]) -> "RedemptionRecord":
        return cls(id=str(doc.get("_id")), **{k: v for k, v in doc.items() if k not in ("_id", "_version")})
