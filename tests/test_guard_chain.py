"""
tests/test_guard_chain.py -- Unit tests for api/guard_chain.py.

Chains are driven directly with a bare Starlette Request; no app is needed.

Covers:
  - guards run in declaration order, the handler runs last
  - a guard that answers without calling proceed() stops the chain
  - proceed() called twice still runs the handler once
  - the same guard listed twice in a row runs once
  - a guard may post-process the downstream response
  - a guard returning None is a GuardChainError
  - a chain exceeding its timeout raises GuardTimeoutError
  - handler return values: dict -> JSON, None -> 204, sync handlers work
"""

from __future__ import annotations

import asyncio

import pytest
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from api.guard_chain import ChainState, GuardChain, _ChainRun
from core.errors import GuardChainError, GuardTimeoutError


def make_request(path: str = "/guarded") -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "scheme": "http",
            "path": path,
            "root_path": "",
            "query_string": b"",
            "headers": [],
            "server": ("testserver", 80),
        }
    )


def run(chain: GuardChain, request: Request | None = None) -> Response:
    return asyncio.run(chain(request or make_request()))


def recording_guard(log: list[str], name: str):
    async def guard(request, proceed):
        log.append(name)
        return await proceed()

    guard.__qualname__ = name
    return guard


def recording_handler(log: list[str]):
    async def handler(request):
        log.append("handler")
        return {"ok": True}

    return handler


def test_no_guards_runs_handler():
    response = run(GuardChain((), recording_handler([])))
    assert response.status_code == 200
    assert response.body == b'{"ok":true}'


def test_guards_run_in_order_before_handler():
    log: list[str] = []
    chain = GuardChain(
        (recording_guard(log, "g1"), recording_guard(log, "g2")),
        recording_handler(log),
    )
    assert run(chain).status_code == 200
    assert log == ["g1", "g2", "handler"]


def test_rejecting_guard_stops_the_chain():
    log: list[str] = []

    async def reject(request, proceed):
        log.append("reject")
        return JSONResponse({"denied": True}, status_code=403)

    chain = GuardChain((recording_guard(log, "g1"), reject), recording_handler(log))
    response = run(chain)

    assert response.status_code == 403
    assert log == ["g1", "reject"]


def test_rejection_is_recorded_on_the_run():
    async def reject(request, proceed):
        return Response(status_code=418)

    chain = GuardChain((reject,), recording_handler([]))
    state = _ChainRun(chain, make_request())
    response = asyncio.run(state.proceed())

    assert response.status_code == 418
    assert state.state is ChainState.REJECTED
    assert state.response is response


def test_double_proceed_runs_handler_once():
    log: list[str] = []

    async def greedy(request, proceed):
        first = await proceed()
        second = await proceed()
        assert first is second
        return second

    chain = GuardChain((greedy,), recording_handler(log))
    assert run(chain).status_code == 200
    assert log == ["handler"]


def test_same_guard_twice_in_a_row_runs_once():
    log: list[str] = []
    guard = recording_guard(log, "g")
    chain = GuardChain((guard, guard), recording_handler(log))
    run(chain)
    assert log == ["g", "handler"]


def test_guard_can_post_process_response():
    async def stamp(request, proceed):
        response = await proceed()
        response.headers["X-Stamped"] = "yes"
        return response

    response = run(GuardChain((stamp,), recording_handler([])))
    assert response.headers["X-Stamped"] == "yes"


def test_guard_state_is_visible_to_handler():
    async def attach(request, proceed):
        request.state.user = "ada"
        return await proceed()

    async def handler(request):
        return {"user": request.state.user}

    assert run(GuardChain((attach,), handler)).body == b'{"user":"ada"}'


def test_guard_returning_none_is_an_error():
    async def silent(request, proceed):
        return None

    with pytest.raises(GuardChainError, match="silent"):
        run(GuardChain((silent,), recording_handler([])))


def test_guard_exception_propagates():
    async def broken(request, proceed):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        run(GuardChain((broken,), recording_handler([])))


def test_timeout_raises_guard_timeout_error():
    async def slow(request, proceed):
        await asyncio.sleep(5)
        return await proceed()

    with pytest.raises(GuardTimeoutError):
        run(GuardChain((slow,), recording_handler([]), timeout=0.05))


def test_zero_timeout_means_no_limit():
    assert GuardChain((), recording_handler([]), timeout=0).timeout is None


def test_handler_returning_none_is_204():
    async def handler(request):
        return None

    assert run(GuardChain((), handler)).status_code == 204


def test_sync_handler_runs():
    def handler(request):
        return {"path": request.url.path}

    assert run(GuardChain((), handler), make_request("/sync")).body == b'{"path":"/sync"}'
