"""Shared FastAPI dependencies."""

from dataclasses import dataclass

from fastapi import Request

from halaqa.core.exceptions import ForbiddenError, UnauthorizedError
from halaqa.core.logging import bind_user_id
from halaqa.core.security import ROLES, load_session_cookie
from halaqa.store.base import Store

SESSION_COOKIE_NAME = "halaqa_session"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str = "student"

    @property
    def is_teacher(self) -> bool:
        return self.role in ("teacher", "admin")


def get_store(request: Request) -> Store:
    """Dependency: the process-wide store."""
    return request.app.state.store


async def get_current_user(request: Request) -> Principal:
    """Dependency: load session from cookie and return the caller's identity."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    role = payload.get("role", "student")
    if role not in ROLES:
        raise UnauthorizedError("Invalid session")
    bind_user_id(str(user_id))
    return Principal(user_id=str(user_id), role=role)


async def require_teacher(request: Request) -> Principal:
    """Dependency: require role teacher (or admin)."""
    user = await get_current_user(request)
    if not user.is_teacher:
        raise ForbiddenError("Teachers only")
    return user


async def require_admin(request: Request) -> Principal:
    """Dependency: require current user to have role admin."""
    user = await get_current_user(request)
    if user.role != "admin":
        raise ForbiddenError("Admin only")
    return user


def ensure_can_read(user: Principal, user_id: str) -> None:
    if user.user_id != user_id and not user.is_teacher:
        raise ForbiddenError("Cannot view another user's points")
