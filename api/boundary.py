"""
api/boundary.py -- Error boundary: every error becomes a response here.

Two outcomes only:
  Client-facing errors (RestError, HTTPException) are forwarded verbatim --
      their status code and body were written for the client.

  Everything else gets a fresh tracking reference. The reference, the request
      line and the full traceback go to the server log; the client receives
      only the generic envelope with the same reference:

          500 {"message": "Internal error occurred. Tracking number: <ref>",
               "code": 1002}

      Exception text, file paths and secrets never reach a response body.

install(app) registers the handlers on a FastAPI app. Compiled route
endpoints also call to_response() directly, so guard and handler failures
never depend on exception-handler ordering inside Starlette.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.errors import EntropyError, NotFoundError, RestError, ValidationError
from core.security import random_hex

logger = logging.getLogger("stormstarter.errors")

TRACKING_REF_BYTES = 8


def render(error: RestError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.body)


def _tracking_ref() -> str:
    try:
        return random_hex(TRACKING_REF_BYTES)
    except EntropyError:
        # The boundary itself must not fail; uuid1 needs no entropy source.
        logger.warning("entropy unavailable, falling back to a time-based tracking ref")
        return uuid.uuid1().hex[: TRACKING_REF_BYTES * 2]


def _from_http_exception(exc: StarletteHTTPException) -> RestError:
    if exc.status_code in (404, 405):
        # Unmatched (method, path) pairs share one envelope.
        return NotFoundError()
    if isinstance(exc.detail, dict):
        return RestError(exc.detail, status_code=exc.status_code)
    return RestError(str(exc.detail), str(exc.status_code), status_code=exc.status_code)


def to_response(exc: BaseException, request: Optional[Request] = None) -> JSONResponse:
    """Translate any exception into the response the client is allowed to see."""
    if isinstance(exc, RestError):
        return render(exc)
    if isinstance(exc, StarletteHTTPException):
        error = _from_http_exception(exc)
        response = render(error)
        # The not-found envelope never carries an Allow header.
        if exc.headers and not isinstance(error, NotFoundError):
            response.headers.update(exc.headers)
        return response

    ref = _tracking_ref()
    where = f"{request.method} {request.url.path}" if request is not None else "outside a request"
    logger.error(
        "error reported (tracking ref: %s) on %s: %s: %s",
        ref,
        where,
        type(exc).__name__,
        exc,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return render(RestError.internal_error(ref))


# ---------------------------------------------------------------------------
# FastAPI wiring
# ---------------------------------------------------------------------------


async def _rest_error_handler(request: Request, exc: RestError) -> JSONResponse:
    return to_response(exc, request)


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return to_response(exc, request)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request validation from static middleware dependencies -> 400 with field messages."""
    fields: dict[str, list[str]] = {}
    for error in exc.errors():
        key = ".".join(str(part) for part in error.get("loc", ())) or "request"
        fields.setdefault(key, []).append(error.get("msg", "invalid"))
    return render(ValidationError("Request validation failed.", fields=fields))


async def _unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    return to_response(exc, request)


def install(app: FastAPI) -> None:
    app.add_exception_handler(RestError, _rest_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_handler)
