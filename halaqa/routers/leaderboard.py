import asyncio

import orjson
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from halaqa.core.streaming import sse_events
from halaqa.deps import Principal, get_current_user, get_store
from halaqa.models.leaderboard import LeaderboardState
from halaqa.services import leaderboard as leaderboard_service
from halaqa.store.base import Store

router = APIRouter()


def _state_json(state: LeaderboardState) -> str:
    return orjson.dumps(state.model_dump(mode="json")).decode()


@router.get("")
async def leaderboard_top(user: Principal = Depends(get_current_user), store: Store = Depends(get_store)):
    """Top students by lifetime points (users with none are not listed)."""
    entries = await leaderboard_service.top_students(store)
    return {"entries": [e.model_dump() for e in entries]}


@router.get("/stream")
async def leaderboard_stream(
    request: Request,
    user: Principal = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    """Live leaderboard (Server-Sent Events). A frame carrying an error is the last one."""
    queue: asyncio.Queue = asyncio.Queue()
    model = leaderboard_service.LeaderboardModel(store)
    model.add_observer(queue.put_nowait)
    await model.start()
    events = sse_events(request, queue, _state_json, model.stop, is_final=lambda s: s.error is not None)
    return StreamingResponse(events, media_type="text/event-stream")
