"""In-memory store semantics shared with the Mongo backend."""

import pytest

from halaqa.core.exceptions import NotFoundError
from halaqa.store.base import Append, Increment, TransactionPlan, apply_updates


def test_apply_updates_increment_and_paths():
    record = {"points": "oops", "total_points": 3, "inventory": None}
    apply_updates(record, {"points": Increment(5), "total_points": Increment(5), "inventory.frame_gold": True})
    assert record == {"points": 5, "total_points": 8, "inventory": {"frame_gold": True}}


async def test_update_bumps_version_and_upserts(store):
    await store.update("users", "u1", {"points": Increment(3)})
    await store.update("users", "u1", {"name": "Amina"})
    doc = await store.get("users", "u1")
    assert doc["points"] == 3
    assert doc["name"] == "Amina"
    assert doc["_version"] == 2


async def test_update_without_upsert_missing(store):
    with pytest.raises(NotFoundError):
        await store.update("users", "u1", {"points": 1}, upsert=False)


async def test_get_returns_copy(store):
    store.seed("users", "u1", {"inventory": {"a": True}})
    doc = await store.get("users", "u1")
    doc["inventory"]["b"] = True
    assert (await store.get("users", "u1"))["inventory"] == {"a": True}


async def test_query_orders_desc_and_skips_non_numeric(store):
    store.seed("users", "b", {"total_points": 10})
    store.seed("users", "a", {"total_points": 10})
    store.seed("users", "c", {"total_points": 30})
    store.seed("users", "d", {"total_points": "999"})
    store.seed("users", "e", {})
    docs = await store.query("users", order_by="total_points", limit=10)
    assert [d["_id"] for d in docs] == ["c", "a", "b"]


async def test_transaction_appends_commit_with_update(store):
    store.seed("users", "u1", {"points": 10})

    def plan(current):
        return TransactionPlan(
            updates={"points": current["points"] - 4},
            appends=[Append("redemptions", {"cost": 4}, key="r1")],
        )

    committed = await store.run_transaction("users", "u1", plan)
    assert committed["points"] == 6
    assert committed["_version"] == 1
    assert (await store.get("redemptions", "r1"))["cost"] == 4


async def test_transaction_rejection_writes_nothing(store):
    store.seed("users", "u1", {"points": 10})

    def plan(current):
        raise ValueError("nope")

    with pytest.raises(ValueError):
        await store.run_transaction("users", "u1", plan)
    assert await store.get("users", "u1") == {"_id": "u1", "points": 10}


async def test_subscribe_delivers_initial_and_changes_until_unsubscribed(store):
    seen = []
    unsubscribe = await store.subscribe("users", "u1", seen.append)
    await store.update("users", "u1", {"points": 1})
    unsubscribe()
    await store.update("users", "u1", {"points": 2})
    assert seen[0] is None
    assert [s["points"] for s in seen[1:]] == [1]


async def test_subscribe_query_redelivers_on_collection_change(store):
    batches = []
    await store.subscribe_query("users", "total_points", 2, batches.append)
    await store.update("users", "u1", {"total_points": Increment(5)})
    await store.update("users", "u2", {"total_points": Increment(9)})
    await store.update("users", "u3", {"total_points": Increment(1)})
    assert batches[0] == []
    assert [d["_id"] for d in batches[-1]] == ["u2", "u1"]


async def test_failing_subscriber_does_not_break_writes(store):
    def broken(snapshot):
        if snapshot is not None:
            raise RuntimeError("render failed")

    await store.subscribe("users", "u1", broken)
    await store.update("users", "u1", {"points": 1})
    assert (await store.get("users", "u1"))["points"] == 1
