"""Collection declarations for MongoDB (names and indexes).

Reads and writes go through MongoStore on raw documents so that corrupt legacy
values survive to the coercing readers; these models are not used for validation.
"""

from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class UserLedgerDocument(Document):
    id: str
    name: str = ""
    photo_url: str | None = None
    points: Any = 0
    total_points: Any = 0
    inventory: dict[str, bool] = Field(default_factory=dict)
    equipped_badge: str | None = None
    equipped_frame: str | None = None
    equipped_avatar: str | None = None
    version: int = Field(default=0, alias="_version")

    class Settings:
        name = "users"
        indexes = [[("total_points", -1), ("_id", 1)]]


class RedemptionDocument(Document):
    id: str
    student_id: str
    student_name: str = ""
    reward_id: str
    reward_name: str = ""
    cost: int
    redeemed_by: str | None = None
    created_at: datetime

    class Settings:
        name = "redemptions"
        indexes = [[("student_id", 1), ("created_at", -1)]]


class AuditLogDocument(Document):
    id: str
    user_id: str | None = None
    event_type: str
    entity_type: str
    entity_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    class Settings:
        name = "audit_logs"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("entity_type", 1), ("entity_id", 1)],
        ]
