"""
core/constants.py -- API paths and client-facing error codes.

Route modules import paths from here so a path is spelled exactly once.
"""

from enum import IntEnum


def _prefix(routes: dict[str, str], prefix: str) -> dict[str, str]:
    return {key: f"{prefix}{path}" for key, path in routes.items()}


class _Paths:
    """Attribute access over a prefixed path table (API_V0.TEST_1)."""

    def __init__(self, prefix: str, routes: dict[str, str]) -> None:
        self.prefix = prefix
        self._routes = _prefix(routes, prefix)

    def __getattr__(self, name: str) -> str:
        try:
            return self._routes[name]
        except KeyError:
            raise AttributeError(name) from None

    def all(self) -> dict[str, str]:
        return dict(self._routes)


API_V0 = _Paths(
    "/api/v0",
    {
        "HEALTH": "/health",
        "TEST_1": "/test/1",
        "TEST_2": "/test/2",
        "REGISTER": "/auth/register",
        "LOGIN": "/auth/login",
        "ME": "/auth/me",
        "REVOKE": "/auth/revoke",
    },
)


class ErrorCode(IntEnum):
    # INTERNAL_ERROR and TEST_2 share 1002; clients tell them apart by status.
    INTERNAL_ERROR = 1002
    TEST_2 = 1002
    VALIDATION_FAILED = 1003
    UNAUTHORIZED = 1004
    BAD_CREDENTIALS = 1005
    USERNAME_TAKEN = 1006
    RATE_LIMITED = 1007
