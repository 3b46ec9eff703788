"""Audit log for critical actions."""

from datetime import datetime, timezone
from typing import Any

from halaqa.store.base import Append

AUDIT_COLLECTION = "audit_logs"


def audit_entry(
    user_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Append:
    """An audit_logs insert, committed together with the write it records."""
    return Append(
        AUDIT_COLLECTION,
        {
            "user_id": user_id,
            "event_type": event_type,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "metadata": metadata or {},
            "created_at": datetime.now(timezone.utc),
        },
    )
