"""Safe numeric coercion for values read back from storage."""

import math
from typing import Any


def safe_number(value: Any) -> float:
    """Parse as number; 0 if missing, non-numeric, NaN or infinite."""
    if isinstance(value, bool):
        return float(value)
    if not isinstance(value, (int, float, str)):
        return 0.0
    try:
        n = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def safe_int(value: Any) -> int:
    """safe_number floored to a non-negative int (balances are whole points)."""
    return max(0, math.floor(safe_number(value)))


def is_clean_int(value: Any) -> bool:
    """True if value is already a stored non-negative int (no repair needed)."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
