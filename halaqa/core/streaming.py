"""Server-Sent Events from an in-process observer queue."""

import asyncio
from typing import AsyncIterator, Callable

from fastapi import Request

KEEPALIVE_SECONDS = 15


async def sse_events(
    request: Request,
    queue: asyncio.Queue,
    encode: Callable[[object], str],
    on_close: Callable[[], None],
    is_final: Callable[[object], bool] = lambda item: False,
) -> AsyncIterator[str]:
    """Yield one ``data:`` frame per queued item until the client disconnects or a final item."""
    try:
        while not await request.is_disconnected():
            try:
                item = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield f"data: {encode(item)}\n\n"
            if is_final(item):
                break
    finally:
        on_close()
