"""Cosmetic store items and real-world rewards."""

from halaqa.core.exceptions import NotFoundError
from halaqa.models.catalog import Reward, StoreItem, Tier
from halaqa.models.ledger import EquipSlot

B, F = EquipSlot.badge, EquipSlot.frame
L, R, C = Tier.legendary, Tier.rare, Tier.common

STORE_ITEMS: list[StoreItem] = [
    StoreItem(id=i, type=t, name=n, cost=c, tier=tier)
    for i, t, n, c, tier in [
        # legendary
        ("frame_super", F, "Super Frame", 2500, L),
        ("badge_coat_of_arms", B, "Coat of Arms", 2000, L),
        ("badge_trophy_star_4", B, "Diamond Star Cup", 1800, L),
        ("badge_crown", B, "Royal Crown", 1500, L),
        ("badge_1st_prize", B, "First Prize", 1500, L),
        ("frame_gold", F, "Gold Award of Excellence", 1200, L),
        ("badge_crown_1", B, "Silver Crown", 1200, L),
        ("badge_diamond_1", B, "Royal Diamond", 1200, L),
        ("badge_diamond", B, "Diamond", 1000, L),
        ("badge_trophy", B, "Championship Cup", 1000, L),
        # rare
        ("frame_wreath_award", F, "Royal Victory Wreath", 600, R),
        ("frame_laurel", F, "Laurel of the Distinguished", 550, R),
        ("badge_trophy_star", B, "Star Cup", 500, R),
        ("badge_award", B, "Award of Excellence", 500, R),
        ("frame_daisy", F, "Daisy", 450, R),
        ("badge_trophy_star_1", B, "Silver Star Cup", 450, R),
        ("badge_gold_medal", B, "Gold Medal", 400, R),
        ("frame_flower", F, "Spring Flower", 350, R),
        ("badge_first", B, "First Place", 300, R),
        ("badge_success", B, "Success", 300, R),
        # common
        ("badge_rank_1", B, "Gold Rank", 150, C),
        ("frame_classic", F, "Classic Frame", 150, C),
        ("frame_photo", F, "Memories Frame", 150, C),
        ("badge_heart", B, "Golden Heart", 120, C),
        ("badge_power", B, "Power", 100, C),
        ("badge_laurel", B, "Laurel Wreath", 100, C),
        ("frame_wreath", F, "Bud Wreath", 100, C),
        ("badge_check_mark", B, "Check Mark", 80, C),
        ("badge_star", B, "Star of Excellence", 50, C),
        ("frame_circle", F, "Simple Circle", 50, C),
        ("frame_round", F, "Round Frame", 50, C),
    ]
]

REWARDS: list[Reward] = [
    Reward(id="cert_500", name="Certificate of Appreciation", cost=500),
    Reward(id="day_off_300", name="Day Off", cost=300),
    Reward(id="gift_200", name="Small Gift", cost=200),
    Reward(id="card_100", name="Thank-you Card", cost=100),
]

_ITEMS_BY_ID = {item.id: item for item in STORE_ITEMS}
_REWARDS_BY_ID = {reward.id: reward for reward in REWARDS}


def list_items(item_type: EquipSlot | None = None) -> list[StoreItem]:
    if item_type is None:
        return list(STORE_ITEMS)
    return [item for item in STORE_ITEMS if item.type == item_type]


def get_item(item_id: str) -> StoreItem:
    item = _ITEMS_BY_ID.get(item_id)
    if not item:
        raise NotFoundError("Store item not found", details={"item_id": item_id})
    return item


def get_reward(reward_id: str) -> Reward:
    reward = _REWARDS_BY_ID.get(reward_id)
    if not reward:
        raise NotFoundError("Reward not found", details={"reward_id": reward_id})
    return reward
