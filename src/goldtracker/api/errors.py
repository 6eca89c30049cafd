"""Exception handlers mapping tracker errors to structured JSON responses.

Every error body has the same shape:
    {"success": false, "error": "<code>", "detail": "<message>", "timestamp": "..."}
No partial data is ever included.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from goldtracker.exceptions import (
    CircuitOpenError,
    PriceSourceError,
    QuoteNotFoundError,
    SignalNotFoundError,
    SourceTimeoutError,
    UnsupportedSymbolError,
)

log = structlog.get_logger(__name__)


def error_response(
    status_code: int,
    code: str,
    detail: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the structured error body."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": code,
            "detail": detail,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        headers=headers,
    )


async def _unsupported_symbol(request: Request, exc: Exception) -> JSONResponse:
    return error_response(400, "invalid_symbol", str(exc))


async def _quote_not_found(request: Request, exc: Exception) -> JSONResponse:
    return error_response(404, "price_not_found", str(exc))


async def _signal_not_found(request: Request, exc: Exception) -> JSONResponse:
    return error_response(404, "signal_not_found", str(exc))


async def _circuit_open(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, CircuitOpenError)
    headers = None
    if exc.retry_after is not None:
        headers = {"Retry-After": str(max(1, int(exc.retry_after)))}
    return error_response(503, "price_source_unavailable", str(exc), headers)


async def _source_error(request: Request, exc: Exception) -> JSONResponse:
    log.warning(
        "price_source_error_response",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    if isinstance(exc, SourceTimeoutError):
        return error_response(504, "price_source_timeout", str(exc))
    return error_response(502, "price_source_error", str(exc))


async def _validation_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    fields = sorted({".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()})
    return error_response(400, "invalid_request", f"Invalid or missing fields: {', '.join(fields)}")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all tracker exception handlers to `app`.

    Starlette picks the handler by walking the exception's MRO, so
    UnsupportedSymbolError resolves to its own handler, not PriceSourceError's.
    """
    app.add_exception_handler(UnsupportedSymbolError, _unsupported_symbol)
    app.add_exception_handler(QuoteNotFoundError, _quote_not_found)
    app.add_exception_handler(SignalNotFoundError, _signal_not_found)
    app.add_exception_handler(CircuitOpenError, _circuit_open)
    app.add_exception_handler(PriceSourceError, _source_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
