"""Points earned for approved memorization/review logs."""

from typing import Any, Literal

from halaqa.core.numbers import safe_number
from halaqa.services import points as points_service
from halaqa.store.base import Store

LogType = Literal["memorization", "review", "activity"]

# a whole mushaf; also keeps the credited amount bounded
MAX_PAGES_PER_LOG = 604

# memorization (hifz) is rewarded above review
POINTS_PER_PAGE: dict[str, int] = {
    "memorization": 3,
    "review": 1,
    "activity": 1,
}


def calculate_points_for_log(log_type: str, pages: int | float = 1) -> int:
    """pages (floored, at most MAX_PAGES_PER_LOG) x per-page rate; never negative. Unknown types earn 1/page."""
    multiplier = POINTS_PER_PAGE.get(log_type, 1)
    return max(0, int(min(pages, MAX_PAGES_PER_LOG) // 1) * multiplier)


def parse_pages(raw: Any) -> int:
    """An approved log always counts: non-numeric or <= 0 pages count as 1."""
    n = safe_number(raw)
    if n < 1:
        return 1
    return int(min(n, MAX_PAGES_PER_LOG))


async def award_for_log(
    store: Store, student_id: str, log_type: str, pages: Any, actor_id: str | None = None
) -> int:
    """Credit the points for one approved log; returns the amount credited."""
    amount = calculate_points_for_log(log_type, parse_pages(pages))
    await points_service.credit(store, student_id, amount, actor_id=actor_id, reason=f"log:{log_type}")
    return amount
