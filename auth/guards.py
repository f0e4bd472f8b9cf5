"""
auth/guards.py -- Guard factories for route modules.

Guards follow the chain contract in api/guard_chain.py:
    async def guard(request, proceed) -> Response

require_user(tokens, store)
    Accepts a token from (in priority order):
      1. Authorization: Bearer <token> header -- API clients.
      2. "token" cookie -- browser clients.
    On success the principal is stored on request.state.user (and the decoded
    token on request.state.token) before the chain advances. On any failure
    the guard answers 401 itself; the failure never propagates as an error,
    and the body is identical for every failure cause.

rate_limit(limit)
    Fixed-window limit per client address, e.g. "10/minute". Uses the limits
    package (slowapi's backend) with slowapi's remote-address key function.
    Counters are per guard instance and in-memory only.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Optional

from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from auth.store import UserStore
from auth.tokens import TokenCodec
from core.constants import ErrorCode
from core.errors import AuthenticationFailure, RestError

TOKEN_COOKIE = "token"

Proceed = Callable[[], Awaitable[Response]]


def _error_response(error: RestError, headers: Optional[dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.body, headers=headers)


def token_from_request(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header[:7].lower() == "bearer ":
        return auth_header[7:].strip() or None
    return request.cookies.get(TOKEN_COOKIE) or None


def require_user(tokens: TokenCodec, store: UserStore):
    """Build a guard that admits only requests carrying a valid token."""

    async def require_user_guard(request: Request, proceed: Proceed) -> Response:
        token = token_from_request(request)
        decoded = None
        if token is not None:
            # Principal lookup is blocking I/O; keep it off the event loop.
            decoded = await run_in_threadpool(tokens.verify, token, store.get_by_snowflake)
        if decoded is None:
            return _error_response(AuthenticationFailure(), headers={"WWW-Authenticate": "Bearer"})
        request.state.user = decoded.principal
        request.state.token = decoded
        return await proceed()

    return require_user_guard


def rate_limit(limit: str, scope: str = "default", key_func: Callable[[Request], str] = get_remote_address):
    """Build a guard that answers 429 once a client exceeds the limit."""
    item = parse(limit)
    limiter = FixedWindowRateLimiter(MemoryStorage())

    async def rate_limit_guard(request: Request, proceed: Proceed) -> Response:
        if not limiter.hit(item, scope, key_func(request)):
            error = RestError("Too many requests.", ErrorCode.RATE_LIMITED, status_code=429)
            return _error_response(error, headers={"Retry-After": str(item.get_expiry())})
        return await proceed()

    return rate_limit_guard
