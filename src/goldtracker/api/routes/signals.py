"""JSON endpoints for the trade signal ledger and its statistics."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from goldtracker.api.routes.prices import cached_json
from goldtracker.cache.response_cache import ResponseCache
from goldtracker.data.signals import SignalStore

log = structlog.get_logger(__name__)

router = APIRouter()

# Cached read endpoints that any signal mutation makes stale
_SIGNAL_CACHE_PREFIXES = ("GET /api/signals", "GET /api/statistics")


class SignalCreate(BaseModel):
    """Body of POST /api/signals."""

    symbol: str = Field(min_length=1, max_length=16)
    trade_type: str = Field(min_length=1, max_length=16)
    entry_price: Decimal = Field(gt=0)
    stoploss: Decimal = Field(gt=0)
    target1: Decimal | None = None
    target2: Decimal | None = None
    target3: Decimal | None = None
    send_notifications: bool = True


class SignalUpdate(BaseModel):
    """Body of PUT /api/signals/{id}. Omitted fields keep their stored value."""

    target1_hit: bool | None = None
    target2_hit: bool | None = None
    target3_hit: bool | None = None
    active: bool | None = None
    current_price: Decimal | None = None
    percentage_change: Decimal | None = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _invalidate(request: Request) -> None:
    cache: ResponseCache = request.app.state.response_cache
    for prefix in _SIGNAL_CACHE_PREFIXES:
        cache.invalidate_prefix(prefix)


@router.get("/signals")
async def list_signals(request: Request, active: bool = False) -> JSONResponse:
    """All signals, newest first. `?active=true` limits to open signals."""
    store: SignalStore = request.app.state.signal_store
    ttl = request.app.state.settings.cache.signals_ttl

    async def compute() -> dict[str, Any]:
        signals = await store.list_signals(active_only=active)
        log.debug("signals_listed", count=len(signals))
        return {
            "success": True,
            "stale": False,
            "signals": [s.to_dict() for s in signals],
            "count": len(signals),
            "timestamp": _now_iso(),
        }

    return await cached_json(request, compute, ttl)


@router.get("/signals/{signal_id}")
async def get_signal(request: Request, signal_id: int) -> JSONResponse:
    """One signal by id."""
    store: SignalStore = request.app.state.signal_store
    signal = await store.get_signal(signal_id)
    return JSONResponse(
        content={"success": True, "signal": signal.to_dict(), "timestamp": _now_iso()}
    )


@router.post("/signals")
async def create_signal(request: Request, body: SignalCreate) -> JSONResponse:
    """Add a signal. current_price starts at entry_price."""
    store: SignalStore = request.app.state.signal_store
    signal_id = await store.create_signal(
        symbol=body.symbol.upper(),
        trade_type=body.trade_type.upper(),
        entry_price=body.entry_price,
        stoploss=body.stoploss,
        target1=body.target1,
        target2=body.target2,
        target3=body.target3,
        send_notifications=body.send_notifications,
    )
    _invalidate(request)
    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "message": "Signal added successfully",
            "signal_id": signal_id,
            "timestamp": _now_iso(),
        },
    )


@router.put("/signals/{signal_id}")
async def update_signal(
    request: Request, signal_id: int, body: SignalUpdate
) -> JSONResponse:
    """Partially update hit flags, activity, or tracked price."""
    store: SignalStore = request.app.state.signal_store
    changes = await store.update_signal(signal_id, **body.model_dump())
    _invalidate(request)
    return JSONResponse(
        content={
            "success": True,
            "message": "Signal updated successfully",
            "changes": changes,
            "timestamp": _now_iso(),
        }
    )


@router.delete("/signals/{signal_id}")
async def delete_signal(request: Request, signal_id: int) -> JSONResponse:
    """Remove a signal from the ledger."""
    store: SignalStore = request.app.state.signal_store
    changes = await store.delete_signal(signal_id)
    _invalidate(request)
    return JSONResponse(
        content={
            "success": True,
            "message": "Signal deleted successfully",
            "changes": changes,
            "timestamp": _now_iso(),
        }
    )


@router.get("/statistics")
async def get_statistics(request: Request) -> JSONResponse:
    """Aggregate counts over the signal ledger."""
    store: SignalStore = request.app.state.signal_store
    ttl = request.app.state.settings.cache.signals_ttl

    async def compute() -> dict[str, Any]:
        stats = await store.get_statistics()
        return {
            "success": True,
            "stale": False,
            "statistics": stats,
            "timestamp": _now_iso(),
        }

    return await cached_json(request, compute, ttl)
