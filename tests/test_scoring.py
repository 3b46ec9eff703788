import pytest

from halaqa.services import points as points_service
from halaqa.services.scoring import award_for_log, calculate_points_for_log, parse_pages


@pytest.mark.parametrize(
    "log_type, pages, expected",
    [
        ("memorization", 5, 15),
        ("review", 5, 5),
        ("activity", 2, 2),
        ("unknown", 4, 4),
        ("memorization", 2.7, 6),
        ("review", -3, 0),
        ("memorization", 1e30, 604 * 3),
    ],
)
def test_calculate_points_for_log(log_type, pages, expected):
    assert calculate_points_for_log(log_type, pages) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [(3, 3), ("4", 4), (0, 1), (-2, 1), ("abc", 1), (None, 1), (2.9, 2), (1e30, 604), ("1e30", 604), (10**400, 1)],
)
def test_parse_pages_defaults_to_one_and_caps(raw, expected):
    assert parse_pages(raw) == expected


async def test_award_for_log_credits(store):
    awarded = await award_for_log(store, "s1", "memorization", "NaN", actor_id="t1")
    assert awarded == 3
    ledger = await points_service.get_ledger(store, "s1")
    assert (ledger.balance, ledger.lifetime_total) == (3, 3)
