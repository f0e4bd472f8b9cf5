"""
api/routes/v0/test.py -- Smoke-test routes.

GET /api/v0/test/1  -> {"test": "successful", "number": <hits so far>}
GET /api/v0/test/2  -> always fails with RestError("Success!", 1002), status 400

test/2 exists so deployments can check the error envelope end to end.
"""

from api.routing import Route, RouteContext
from core.constants import API_V0, ErrorCode
from core.counter import AtomicCounter
from core.errors import RestError


def routes(context: RouteContext) -> list[Route]:
    hits = AtomicCounter()

    async def test_one(request):
        return {"test": "successful", "number": hits.next()}

    async def test_two(request):
        raise RestError("Success!", ErrorCode.TEST_2)

    return [
        Route.define(path=API_V0.TEST_1, method="GET", handler=test_one),
        Route.define(path=API_V0.TEST_2, method="GET", handler=test_two),
    ]
