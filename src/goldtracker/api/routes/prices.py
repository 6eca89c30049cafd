"""JSON endpoints for metal prices, forced refresh and health."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from goldtracker.cache.response_cache import ResponseCache, make_cache_key
from goldtracker.exceptions import UnsupportedSymbolError

log = structlog.get_logger(__name__)

router = APIRouter()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def cached_json(
    request: Request,
    compute: Callable[[], Awaitable[dict[str, Any]]],
    ttl: float,
) -> JSONResponse:
    """Serve a JSON payload through the response cache with fallback.

    The X-Cache header says where the body came from: cache, fresh or fallback.
    """
    cache: ResponseCache = request.app.state.response_cache
    key = make_cache_key(request.method, request.url.path, dict(request.query_params))
    result = await cache.serve(key, compute, ttl)
    return JSONResponse(content=result.payload, headers={"X-Cache": result.source})


def _normalize_symbol(request: Request, symbol: str) -> str:
    """Upper-case `symbol` and reject anything outside the tracked set."""
    normalized = symbol.upper()
    if normalized not in request.app.state.price_service.symbols:
        raise UnsupportedSymbolError(symbol)
    return normalized


@router.get("/prices")
async def get_prices(request: Request) -> JSONResponse:
    """All current metal prices, keyed by symbol.

    Quotes older than the freshness window (served because the live fetch
    failed) are listed in ``stale_symbols``; metals with no quote at all
    are listed in ``unavailable``.
    """
    price_service = request.app.state.price_service
    ttl = request.app.state.settings.cache.prices_ttl

    async def compute() -> dict[str, Any]:
        quotes = await price_service.get_all_current_prices()
        stale_symbols = [s for s in quotes if await price_service.is_stale(s)]
        return {
            "success": True,
            "stale": bool(stale_symbols),
            "stale_symbols": stale_symbols,
            "unavailable": [s for s in price_service.symbols if s not in quotes],
            "timestamp": _now_iso(),
            "prices": {symbol: quote.to_dict() for symbol, quote in quotes.items()},
        }

    return await cached_json(request, compute, ttl)


@router.get("/prices/{symbol}")
async def get_price(request: Request, symbol: str) -> JSONResponse:
    """Current price for one metal (snapshot, or live when stale)."""
    symbol = _normalize_symbol(request, symbol)
    price_service = request.app.state.price_service
    ttl = request.app.state.settings.cache.prices_ttl

    async def compute() -> dict[str, Any]:
        quote = await price_service.get_current_price(symbol)
        return {
            "success": True,
            "stale": await price_service.is_stale(symbol),
            "timestamp": _now_iso(),
            "price": quote.to_dict(),
        }

    return await cached_json(request, compute, ttl)


@router.get("/metals/{symbol}/price")
async def get_live_price(request: Request, symbol: str) -> JSONResponse:
    """Live price straight from the source (through breaker and writer)."""
    symbol = _normalize_symbol(request, symbol)
    price_service = request.app.state.price_service
    ttl = request.app.state.settings.cache.live_price_ttl

    async def compute() -> dict[str, Any]:
        quote = await price_service.fetch_live_price(symbol)
        return {
            "success": True,
            "stale": False,
            "symbol": symbol,
            **{k: v for k, v in quote.to_dict().items() if k != "symbol"},
            "timestamp": _now_iso(),
        }

    return await cached_json(request, compute, ttl)


@router.post("/prices/refresh")
async def refresh_prices(request: Request) -> JSONResponse:
    """Run one refresh tick now and report how many metals changed."""
    price_service = request.app.state.price_service
    updated = await price_service.force_refresh()
    log.info("prices_refreshed_via_api", updated=updated)
    return JSONResponse(
        content={"success": True, "updated": updated, "timestamp": _now_iso()}
    )


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    """Liveness plus breaker and scheduler state. Never cached."""
    state = request.app.state
    scheduler = state.scheduler
    last = scheduler.last_result

    return JSONResponse(
        content={
            "status": "healthy",
            "timestamp": _now_iso(),
            "database": "connected" if state.database.is_connected else "disconnected",
            "circuit_breaker": state.breaker.snapshot(),
            "scheduler": {
                "running": scheduler.running,
                "interval": scheduler.interval,
                "last_tick": (
                    {
                        "updated": last.updated,
                        "unchanged": last.unchanged,
                        "failed": last.failed,
                    }
                    if last is not None
                    else None
                ),
            },
        }
    )
