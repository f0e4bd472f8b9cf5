"""
api/guard_chain.py -- Ordered guard execution in front of a route handler.

Pattern: Chain of Responsibility, the same shape as Starlette's
@app.middleware("http") call_next, but per route and with the chain position
held in a fresh _ChainRun for every request:

    async def guard(request, proceed):
        if not allowed(request):
            return JSONResponse({...}, status_code=403)   # reject
        return await proceed()                            # advance

Run states:
  PENDING   no guard has run yet
  RUNNING   a guard is executing
  TERMINAL  the handler ran; its response is recorded
  REJECTED  a guard returned without calling proceed(); its response is recorded

Rules:
  - Guards run strictly one after another, in declaration order.
  - When the guard about to run is the same object as the one that ran just
    before it, it is treated as already consumed and the handler runs.
  - Once a run is TERMINAL or REJECTED, any further proceed() call (a guard
    calling it twice) returns the recorded response. The handler never runs
    twice and never runs after a rejection.
  - A guard that returns None has neither advanced nor answered:
    GuardChainError. A chain that outlives the timeout: GuardTimeoutError.
    Both are internal errors for the error boundary.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from api.routing import Guard
from core.errors import GuardChainError, GuardTimeoutError


class ChainState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    TERMINAL = "terminal"
    REJECTED = "rejected"


def to_response(result: Any) -> Response:
    """Turn a handler's return value into a Response."""
    if isinstance(result, Response):
        return result
    if result is None:
        return Response(status_code=204)
    return JSONResponse(content=jsonable_encoder(result))


class GuardChain:
    """A compiled guard chain plus terminal handler. Immutable and shareable."""

    def __init__(
        self,
        guards: Sequence[Guard],
        handler: Callable[..., Any],
        timeout: Optional[float] = None,
    ) -> None:
        self.guards: tuple[Guard, ...] = tuple(guards)
        self.handler = handler
        self.timeout = timeout or None
        self._handler_is_async = inspect.iscoroutinefunction(handler)

    async def __call__(self, request: Request) -> Response:
        run = _ChainRun(self, request)
        if self.timeout is None:
            return await run.proceed()
        try:
            return await asyncio.wait_for(run.proceed(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise GuardTimeoutError(
                f"{request.method} {request.url.path} did not complete within {self.timeout}s "
                f"(stopped in state {run.state.value} at guard index {run.index - 1})"
            ) from None

    async def invoke_handler(self, request: Request) -> Response:
        if self._handler_is_async:
            result = await self.handler(request)
        else:
            result = await run_in_threadpool(self.handler, request)
            if inspect.isawaitable(result):
                result = await result
        return to_response(result)


class _ChainRun:
    """Chain position for one request. Never shared between requests."""

    def __init__(self, chain: GuardChain, request: Request) -> None:
        self._chain = chain
        self._request = request
        self.index = 0
        self.state = ChainState.PENDING
        self.response: Optional[Response] = None
        self._previous: Optional[Guard] = None

    async def proceed(self) -> Response:
        if self.state in (ChainState.TERMINAL, ChainState.REJECTED):
            return self.response

        position = self.index
        guards = self._chain.guards
        guard = guards[position] if position < len(guards) else None
        self.index += 1

        if guard is None or guard is self._previous:
            self.state = ChainState.TERMINAL
            self.response = await self._chain.invoke_handler(self._request)
            return self.response

        self._previous = guard
        self.state = ChainState.RUNNING
        response = await guard(self._request, self.proceed)
        if response is None:
            name = getattr(guard, "__qualname__", repr(guard))
            raise GuardChainError(f"guard {name} returned no response")
        if self.index == position + 1 and self.state is ChainState.RUNNING:
            self.state = ChainState.REJECTED
            self.response = response
        return response
