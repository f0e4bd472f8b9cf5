"""
api/routing.py -- Route descriptors and the contract for route modules.

A route module is any *.py file under the routes directory that exports a
`routes` attribute in one of three shapes:

    routes = Route.define(path=..., method="GET", handler=...)    # single
    routes = [Route.define(...), Route.define(...)]               # many
    def routes(context: RouteContext) -> Route | list[Route]: ... # constructor

The constructor shape is preferred whenever handlers need services or keep
state: everything the module needs arrives through RouteContext, and any
state the handlers share lives in the constructor's closure instead of at
module level.

Route is a frozen pydantic model, so a descriptor is validated once when it is
built. Dispatch never re-checks shapes at request time.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, TypeVar, get_args

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from starlette.requests import Request
from starlette.responses import Response

from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import Settings
from core.errors import RouteDefinitionError, ValidationError
from core.snowflake import IdGenerator

HttpMethod = Literal["GET", "POST", "OPTIONS", "PATCH", "DELETE"]
HTTP_METHODS: tuple[str, ...] = get_args(HttpMethod)

Proceed = Callable[[], Awaitable[Response]]
Guard = Callable[[Request, Proceed], Awaitable[Response]]

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class RouteContext:
    """Services handed to route constructors at discovery time."""

    settings: Settings
    user_store: UserStore
    ids: IdGenerator
    tokens: TokenCodec


class Route(BaseModel):
    """An immutable route descriptor.

    guards run in order before the handler (see api.guard_chain).
    static_middleware are FastAPI dependency callables attached to the
    endpoint; they run before the guard chain on every request.
    handler takes the request and returns a Response, a JSON-serialisable
    value, or None (204). It may be sync or async.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = Field(pattern=r"^/")
    method: HttpMethod
    handler: Callable[..., Any]
    guards: tuple[Callable[..., Any], ...] = ()
    static_middleware: tuple[Callable[..., Any], ...] = ()

    @field_validator("method", mode="before")
    @classmethod
    def normalise_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @property
    def key(self) -> tuple[str, str]:
        return (self.method, self.path)

    @classmethod
    def define(cls, **fields: Any) -> "Route":
        """Build a route, raising RouteDefinitionError instead of a pydantic error."""
        return cls._validated(fields)

    @classmethod
    def _validated(cls, fields: dict[str, Any]) -> "Route":
        try:
            return cls.model_validate(fields)
        except pydantic.ValidationError as exc:
            problems = "; ".join(f"{'.'.join(map(str, e['loc'])) or 'route'}: {e['msg']}" for e in exc.errors())
            raise RouteDefinitionError(problems) from exc

    @classmethod
    def coerce(cls, candidate: Any) -> "Route":
        """Accept a Route or a plain mapping of route fields."""
        if isinstance(candidate, Route):
            return candidate
        if isinstance(candidate, Mapping):
            if not all(isinstance(key, str) for key in candidate):
                raise RouteDefinitionError("route field names must be strings")
            return cls._validated(dict(candidate))
        raise RouteDefinitionError(f"expected a Route or a mapping, got {type(candidate).__name__}")


def prefixed(routes: Iterable[Route], prefix: str) -> list[Route]:
    """Return copies of the routes with prefix prepended to each path."""
    prefix = prefix.rstrip("/")
    return [route.model_copy(update={"path": f"{prefix}{route.path}"}) for route in routes]


async def parse_body(request: Request, model: type[ModelT]) -> ModelT:
    """Parse the JSON body into a pydantic model.

    Raises ValidationError (400) with per-field messages on failure, so
    handlers never turn a bad request body into an internal error.
    """
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON.") from None
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        fields: dict[str, list[str]] = {}
        for error in exc.errors():
            key = ".".join(str(part) for part in error["loc"]) or "body"
            fields.setdefault(key, []).append(error["msg"])
        raise ValidationError("Request validation failed.", fields=fields) from None
