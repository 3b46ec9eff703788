from pydantic import BaseModel

from halaqa.models.ledger import Equipped


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    display_name: str
    lifetime_total: int
    photo_url: str | None = None
    equipped: Equipped


class LeaderboardState(BaseModel):
    """What a live leaderboard observer receives on every change."""

    entries: list[LeaderboardEntry] = []
    loading: bool = True
    error: str | None = None
