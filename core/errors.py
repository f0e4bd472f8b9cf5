"""
core/errors.py -- Error taxonomy shared by every layer.

Two families:
  RestError and subclasses carry a client-facing (status_code, body) pair.
      The error boundary forwards them verbatim. Anything a guard or handler
      wants the client to see must be one of these.

  InternalError and subclasses (plus every other exception) are never shown
      to the client. The error boundary replaces them with an opaque tracking
      reference and logs the detail server-side.

StartupDiscoveryWarning is not raised; the route registry records one per
skipped module or directory so startup problems are inspectable in tests.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

from typing import Any, Optional

from core.constants import ErrorCode


class RestError(Exception):
    """An error whose body is safe to send to the client.

    Either a standard envelope built from (message, code[, fields]) or an
    arbitrary dict body supplied by the caller.
    """

    status_code: int = 400

    def __init__(
        self,
        message: str | dict[str, Any],
        code: Optional[int | str] = None,
        fields: Optional[dict[str, list[str]]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        if isinstance(message, dict):
            self._body: dict[str, Any] = dict(message)
            text = str(message.get("message", ""))
        else:
            if isinstance(code, int):
                code = int(code)
            self._body = {"message": message, "code": code}
            if fields:
                self._body["fields"] = fields
            text = message
        super().__init__(text)
        if status_code is not None:
            self.status_code = status_code

    @property
    def body(self) -> dict[str, Any]:
        return dict(self._body)

    @classmethod
    def internal_error(cls, ref: str) -> "RestError":
        """The generic envelope sent in place of any non-client-facing error."""
        return cls(
            f"Internal error occurred. Tracking number: {ref}",
            ErrorCode.INTERNAL_ERROR,
            status_code=500,
        )


class ValidationError(RestError):
    """Malformed input (body, token shape, missing fields)."""

    status_code = 400

    def __init__(self, message: str = "Validation failed.", fields: Optional[dict[str, list[str]]] = None) -> None:
        super().__init__(message, ErrorCode.VALIDATION_FAILED, fields=fields)


class AuthenticationFailure(RestError):
    status_code = 401

    def __init__(self, message: str = "Authentication required.") -> None:
        super().__init__(message, ErrorCode.UNAUTHORIZED)


class NotFoundError(RestError):
    """Unmatched dispatch lookup. The envelope is fixed."""

    status_code = 404

    def __init__(self) -> None:
        super().__init__({"code": "404", "message": "Not found."})


class InternalError(Exception):
    """Base class for failures that must never be described to a client."""


class EntropyError(InternalError):
    """The operating system could not supply secure random bytes."""


class ExhaustionError(InternalError):
    """The snowflake generator cannot produce another identifier right now."""


class GuardChainError(InternalError):
    """A guard broke the chain contract (e.g. returned no response)."""


class GuardTimeoutError(GuardChainError):
    """A guard chain did not finish within the configured timeout."""


class RouteDefinitionError(ValueError):
    """A route descriptor failed validation."""


class StartupDiscoveryWarning(UserWarning):
    """A route module or directory was skipped during discovery."""

    def __init__(self, location: str, reason: str) -> None:
        super().__init__(f"{location}: {reason}")
        self.location = location
        self.reason = reason
