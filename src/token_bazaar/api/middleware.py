"""FastAPI middleware for request tracing, error translation, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — binds X-Request-ID into the log context and logs
       one line per request with its status and duration
    2. ErrorHandlerMiddleware — MarketplaceError -> {"error", "message"} JSON
       with the status class of its ErrorKind
    3. CORSMiddleware — the marketplace front end is served from its own origin

Body validation failures never reach the middleware; FastAPI raises them
before the route runs, so they get a dedicated exception handler.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from token_bazaar.domain.enums import ErrorKind
from token_bazaar.domain.exceptions import MarketplaceError

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.STATE_CONFLICT: 409,
    ErrorKind.SECURITY: 400,
    ErrorKind.UPSTREAM_FAILURE: 502,
}

# Kinds that point at an attack or an outage rather than a client mistake
_LOUD_KINDS = frozenset({ErrorKind.SECURITY, ErrorKind.UPSTREAM_FAILURE})


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": code, "message": message})


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Correlate every log line of a request and time the request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "http.request",
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Translate domain exceptions raised by routes into JSON error bodies."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except MarketplaceError as exc:
            log = logger.error if exc.kind in _LOUD_KINDS else logger.warning
            log("domain.error", kind=str(exc.kind), code=exc.code, error=exc.message)
            return error_response(STATUS_BY_KIND.get(exc.kind, 400), exc.code, exc.message)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Missing or malformed body/query fields -> 400 INVALID_REQUEST."""
    fields = sorted(
        {".".join(str(part) for part in err.get("loc", ()) if part != "body") for err in exc.errors()}
    )
    logger.warning("request.invalid", fields=fields)
    return error_response(400, "INVALID_REQUEST", f"Missing or invalid fields: {', '.join(fields)}")


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register the exception handler and middleware; the last added runs first."""
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)
