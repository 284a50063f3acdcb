"""Shared FastAPI dependencies."""

from typing import Awaitable, Callable

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Depends, Request

from ecopoints.core.config import get_settings
from ecopoints.core.exceptions import AccountInactive, ForbiddenError, NotFoundError, RateLimited, UnauthorizedError
from ecopoints.core.logging import bind_account_id
from ecopoints.core.security import load_session_cookie
from ecopoints.models.account import Account
from ecopoints.services import rate_limit

SESSION_COOKIE_NAME = "ecopoints_session"


async def get_current_account(request: Request) -> Account:
    """Dependency: load session from cookie and return the active Account."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    account_id = payload.get("account_id")
    if not account_id:
        raise UnauthorizedError("Invalid session")
    try:
        account = await Account.get(PydanticObjectId(account_id))
    except InvalidId:
        raise UnauthorizedError("Invalid session")
    if not account:
        raise UnauthorizedError("Account not found")
    if payload.get("session_version") != account.session_version:
        raise UnauthorizedError("Session invalidated")
    if not account.is_active:
        raise AccountInactive()
    bind_account_id(str(account.id))
    return account


async def require_admin(account: Account = Depends(get_current_account)) -> Account:
    """Dependency: require current account to have role admin."""
    if account.role != "admin":
        raise ForbiddenError("Admin only")
    return account


def parse_object_id(value: str) -> PydanticObjectId:
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError("Not found")


def rate_limited(action: str) -> Callable[..., Awaitable[None]]:
    """Dependency factory: reject with 429 once the account or client exceeds the action's window."""

    async def dependency(request: Request) -> None:
        if not get_settings().rate_limit_enabled:
            return
        cookie_payload = load_session_cookie(request.cookies.get(SESSION_COOKIE_NAME, "")) or {}
        identity = cookie_payload.get("account_id") or (request.client.host if request.client else "anonymous")
        if not await rate_limit.hit(rate_limit.get_redis(), action, identity):
            raise RateLimited()

    return dependency
