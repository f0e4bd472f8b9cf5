"""
api/main.py -- FastAPI application factory for stormstarter.

Run with:      uvicorn asgi:app --reload
               python main.py serve

create_app() assembles the service in a fixed order:
  1. Settings, user store, snowflake generator and token codec.
  2. Route discovery over ROUTES_DIR. The dispatch table is complete and
     immutable before the app exists to serve a request.
  3. Error boundary handlers and the request logging middleware.

The health endpoint is registered through the same registry as discovered
routes, so it is listed in the dispatch table and wins any path clash.

Lifespan closes the user store on shutdown when the factory created it.
Stores injected by the caller (tests, CLI) are left to the caller.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from starlette.concurrency import run_in_threadpool

from api import boundary
from api.models import HealthResponse
from api.registry import RouteRegistry
from api.routing import Route, RouteContext
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import Settings, get_settings
from core.constants import API_V0
from core.snowflake import IdGenerator

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("stormstarter.api")


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def build_context(settings: Settings, user_store: Optional[UserStore] = None) -> RouteContext:
    """Services every route constructor receives."""
    return RouteContext(
        settings=settings,
        user_store=user_store or UserStore(settings.database_url),
        ids=IdGenerator(node_id=settings.server_id, epoch_ms=settings.snowflake_epoch_ms),
        tokens=TokenCodec(),
    )


def create_app(
    settings: Optional[Settings] = None,
    user_store: Optional[UserStore] = None,
    routes_dir: Optional[str | Path] = None,
) -> FastAPI:
    settings = settings or get_settings()
    owns_store = user_store is None
    context = build_context(settings, user_store)

    registry = RouteRegistry(context, guard_timeout=settings.guard_timeout_seconds)

    async def health(request: Request) -> HealthResponse:
        """Liveness plus route and user counts."""
        users = await run_in_threadpool(context.user_store.count_users)
        return HealthResponse(version=VERSION, routes=len(table), users=users)

    registry.register(Route.define(path=API_V0.HEALTH, method="GET", handler=health), source=__name__)
    table = registry.discover(routes_dir or settings.routes_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "stormstarter API starting up (server id %d, %d routes, %d discovery warnings)",
            settings.server_id,
            len(table),
            len(registry.issues),
        )
        yield
        if owns_store:
            context.user_store.close()
        logger.info("stormstarter API shutdown complete")

    app = FastAPI(
        title="stormstarter API",
        description="Signed-token auth and file-discovered routes.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.user_store = context.user_store
    app.state.ids = context.ids
    app.state.tokens = context.tokens
    app.state.dispatch_table = table
    app.state.discovery_issues = list(registry.issues)

    boundary.install(app)
    app.middleware("http")(log_requests)
    table.mount(app)
    return app
