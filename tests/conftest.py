import os
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")


@pytest.fixture
def store():
    from halaqa.store.memory import MemoryStore
    return MemoryStore(max_attempts=5, backoff_ms=0)


def session_header(user_id: str, role: str = "student") -> dict[str, str]:
    from halaqa.core.security import create_session_cookie
    from halaqa.deps import SESSION_COOKIE_NAME
    cookie = create_session_cookie({"user_id": user_id, "role": role})
    return {"Cookie": f"{SESSION_COOKIE_NAME}={cookie}"}


@pytest_asyncio.fixture
async def client(store) -> AsyncGenerator[Callable[..., AsyncClient], None]:
    """Factory: client_for(user_id, role) -> AsyncClient authenticated as that user (None: anonymous)."""
    from halaqa.deps import get_store
    from halaqa.main import app

    app.dependency_overrides[get_store] = lambda: store
    opened: list[AsyncClient] = []

    def client_for(user_id: str | None = None, role: str = "student") -> AsyncClient:
        headers = session_header(user_id, role) if user_id else {}
        ac = AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers)
        opened.append(ac)
        return ac

    yield client_for
    for ac in opened:
        await ac.aclose()
    app.dependency_overrides.clear()
