"""Server-Sent Events: frames, final error frame, and unsubscribe on close."""

import asyncio

import orjson
import pytest

from halaqa.core import streaming
from halaqa.core.streaming import sse_events
from halaqa.deps import Principal
from halaqa.routers.leaderboard import leaderboard_stream
from halaqa.routers.points import points_me_stream
from halaqa.services import points as points_service
from halaqa.services.balance_sync import LOAD_ERROR_MESSAGE
from halaqa.services.leaderboard import LOAD_ERROR_MESSAGE as BOARD_ERROR_MESSAGE
from halaqa.store.memory import MemoryStore


class _Client:
    """Stands in for the Request: only the disconnect check is used."""

    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


class _ErrorCapturingStore(MemoryStore):
    def __init__(self):
        super().__init__(backoff_ms=0)
        self.error_handlers = []

    async def subscribe(self, collection, key, on_change, on_error=None):
        self.error_handlers.append(on_error)
        return await super().subscribe(collection, key, on_change, on_error)

    async def subscribe_query(self, collection, order_by, limit, on_change, on_error=None):
        self.error_handlers.append(on_error)
        return await super().subscribe_query(collection, order_by, limit, on_change, on_error)


def _data(frame: str):
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return orjson.loads(frame[len("data: "):])


async def _drain(frames) -> list[str]:
    return [frame async for frame in frames]


async def test_sse_events_stop_after_final_item():
    queue: asyncio.Queue = asyncio.Queue()
    for item in ("a", "bye", "never"):
        queue.put_nowait(item)
    closed = []
    frames = sse_events(_Client(), queue, str, lambda: closed.append(True), is_final=lambda item: item == "bye")
    assert await _drain(frames) == ["data: a\n\n", "data: bye\n\n"]
    assert closed == [True]


async def test_sse_events_stop_on_disconnect():
    queue: asyncio.Queue = asyncio.Queue()
    queue.put_nowait("a")
    client = _Client()
    closed = []
    frames = sse_events(client, queue, str, lambda: closed.append(True))
    assert await anext(frames) == "data: a\n\n"
    client.disconnected = True
    with pytest.raises(StopAsyncIteration):
        await anext(frames)
    assert closed == [True]


async def test_sse_events_keepalive_when_idle(monkeypatch):
    monkeypatch.setattr(streaming, "KEEPALIVE_SECONDS", 0.01)
    closed = []
    frames = sse_events(_Client(), asyncio.Queue(), str, lambda: closed.append(True))
    assert await anext(frames) == ": keepalive\n\n"
    await frames.aclose()
    assert closed == [True]


async def test_points_stream_frames_and_unsubscribe(store):
    store.seed("users", "s1", {"points": 10, "total_points": 10, "inventory": {"b": True, "a": True}})
    client = _Client()
    response = await points_me_stream(client, Principal("s1"), store)
    frames = response.body_iterator

    assert _data(await anext(frames))["loading"] is True
    first = _data(await anext(frames))
    assert (first["balance"], first["loading"], first["inventory"]) == (10, False, ["a", "b"])

    await points_service.credit(store, "s1", 5)
    assert _data(await anext(frames))["balance"] == 15

    client.disconnected = True
    with pytest.raises(StopAsyncIteration):
        await anext(frames)
    assert store._watchers[("users", "s1")] == []


async def test_points_stream_error_frame_ends_stream():
    store = _ErrorCapturingStore()
    store.seed("users", "s1", {"points": 10, "total_points": 10})
    response = await points_me_stream(_Client(), Principal("s1"), store)
    frames = response.body_iterator
    await anext(frames)
    await anext(frames)

    store.error_handlers[-1](RuntimeError("permission denied"))
    rest = await _drain(frames)
    assert len(rest) == 1
    last = _data(rest[0])
    assert last["error"] == LOAD_ERROR_MESSAGE
    assert last["balance"] == 10
    assert store._watchers[("users", "s1")] == []


async def test_leaderboard_stream_frames_and_unsubscribe(store):
    store.seed("users", "a", {"name": "Amina", "points": 10, "total_points": 10})
    client = _Client()
    response = await leaderboard_stream(client, Principal("s1"), store)
    frames = response.body_iterator

    first = _data(await anext(frames))
    assert [e["user_id"] for e in first["entries"]] == ["a"]
    assert first["error"] is None

    await points_service.credit(store, "b", 25)
    update = _data(await anext(frames))
    assert [(e["rank"], e["user_id"]) for e in update["entries"]] == [(1, "b"), (2, "a")]

    client.disconnected = True
    with pytest.raises(StopAsyncIteration):
        await anext(frames)
    assert store._query_watchers["users"] == []


async def test_leaderboard_stream_error_frame_ends_stream():
    store = _ErrorCapturingStore()
    store.seed("users", "a", {"points": 10, "total_points": 10})
    response = await leaderboard_stream(_Client(), Principal("s1"), store)
    frames = response.body_iterator
    await anext(frames)

    store.error_handlers[-1](RuntimeError("index missing"))
    rest = await _drain(frames)
    assert len(rest) == 1
    last = _data(rest[0])
    assert last["error"] == BOARD_ERROR_MESSAGE
    assert last["loading"] is False
    assert [e["user_id"] for e in last["entries"]] == ["a"]
    assert store._query_watchers["users"] == []
