"""
api/routes/v0/auth.py -- Account and token endpoints.

Endpoints:
  POST /api/v0/auth/register  -- create a user, return it with a fresh token (201)
  POST /api/v0/auth/login     -- exchange username/password for a token
                                 (rate-limited per client address)
  GET  /api/v0/auth/me        -- the authenticated principal
  POST /api/v0/auth/revoke    -- rotate the caller's signing secret; every token
                                 issued so far stops verifying. Returns a new one.

Failures use the standard envelope:
  400 VALIDATION_FAILED   malformed body
  409 USERNAME_TAKEN      register with an existing username
  401 BAD_CREDENTIALS     wrong username or password (same body for both)
  401 UNAUTHORIZED        missing or invalid token on me/revoke
  429 RATE_LIMITED        too many login attempts
"""

from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.models import LoginRequest, RegisterRequest, RegisterResponse, TokenResponse, UserResponse
from api.routing import Route, RouteContext, parse_body
from auth.credentials import authenticate_user, create_user, rotate_secret
from auth.guards import TOKEN_COOKIE, rate_limit, require_user
from core.constants import API_V0, ErrorCode
from core.errors import RestError


def routes(context: RouteContext) -> list[Route]:
    store = context.user_store
    tokens = context.tokens
    ids = context.ids

    signed_in = require_user(tokens, store)
    login_limit = rate_limit(context.settings.login_rate_limit, scope="login")

    async def register(request: Request) -> JSONResponse:
        body = await parse_body(request, RegisterRequest)
        try:
            user = await run_in_threadpool(create_user, store, ids, body.username, body.password)
        except IntegrityError:
            raise RestError("Username already registered.", ErrorCode.USERNAME_TAKEN, status_code=409) from None
        payload = RegisterResponse(user=UserResponse.from_user(user), token=tokens.sign(user))
        return JSONResponse(status_code=201, content=payload.model_dump())

    async def login(request: Request) -> JSONResponse:
        body = await parse_body(request, LoginRequest)
        user = await run_in_threadpool(authenticate_user, store, body.username, body.password)
        if user is None:
            raise RestError("Invalid username or password.", ErrorCode.BAD_CREDENTIALS, status_code=401)
        token = tokens.sign(user)
        response = JSONResponse(TokenResponse(token=token).model_dump())
        response.set_cookie(TOKEN_COOKIE, token, httponly=True, samesite="lax")
        response.headers["Cache-Control"] = "no-store"
        return response

    def me(request: Request) -> UserResponse:
        return UserResponse.from_user(request.state.user)

    def revoke(request: Request) -> JSONResponse:
        user = rotate_secret(store, request.state.user)
        token = tokens.sign(user)
        response = JSONResponse(TokenResponse(token=token).model_dump())
        response.set_cookie(TOKEN_COOKIE, token, httponly=True, samesite="lax")
        return response

    return [
        Route.define(path=API_V0.REGISTER, method="POST", handler=register),
        Route.define(path=API_V0.LOGIN, method="POST", handler=login, guards=(login_limit,)),
        Route.define(path=API_V0.ME, method="GET", handler=me, guards=(signed_in,)),
        Route.define(path=API_V0.REVOKE, method="POST", handler=revoke, guards=(signed_in,)),
    ]
