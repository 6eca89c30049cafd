"""Entry point for the gold tracker backend.

Wires all components together and serves the FastAPI app with uvicorn.
The refresh scheduler and the HTTP handlers share a single asyncio event
loop; FastAPI's lifespan context manager owns startup and shutdown.

Component wiring order (in build_components):
1. TrackerDatabase (SQLite connection, not opened yet)
2. PriceStore / SignalStore (typed SQL access)
3. HttpPriceSourceClient (quote API)
4. CircuitBreaker (shared by scheduler and request path)
5. PriceSnapshot (in-memory latest quotes)
6. ChangeAwareWriter (change gate, snapshot + store writes)
7. ResponseCache (primary + fallback layers)
8. RefreshScheduler (background ticks)
9. PriceService (read-side queries)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from goldtracker.cache.response_cache import ResponseCache
from goldtracker.config import AppSettings
from goldtracker.data.database import TrackerDatabase
from goldtracker.data.signals import SignalStore
from goldtracker.data.store import PriceStore
from goldtracker.logging import get_logger, setup_logging
from goldtracker.market_data.circuit_breaker import CircuitBreaker
from goldtracker.market_data.price_service import PriceService
from goldtracker.market_data.scheduler import RefreshScheduler
from goldtracker.market_data.snapshot import PriceSnapshot
from goldtracker.market_data.writer import ChangeAwareWriter
from goldtracker.source.http_client import HttpPriceSourceClient


def build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Does NOT open the database or HTTP pool -- that happens in the lifespan.

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("goldtracker.main")

    database = TrackerDatabase(settings.database.path)
    price_store = PriceStore(database)
    signal_store = SignalStore(database)

    client = HttpPriceSourceClient(settings.source)
    if not settings.source.api_key.get_secret_value():
        logger.warning(
            "no_source_api_key_configured",
            note="Requests to the price source will be sent without a credential.",
        )

    breaker = CircuitBreaker(
        failure_threshold=settings.breaker.failure_threshold,
        recovery_timeout=settings.breaker.recovery_timeout,
    )
    snapshot = PriceSnapshot()
    writer = ChangeAwareWriter(
        snapshot,
        price_store,
        change_threshold=settings.scheduler.change_threshold,
    )
    response_cache = ResponseCache(
        max_entries=settings.cache.max_entries,
        max_fallback_entries=settings.cache.max_fallback_entries,
        deadline=settings.cache.deadline,
    )
    scheduler = RefreshScheduler(
        client=client,
        breaker=breaker,
        writer=writer,
        settings=settings.scheduler,
        cache=response_cache,
        invalidate_prefixes=settings.cache.invalidate_prefixes,
    )
    price_service = PriceService(
        client=client,
        breaker=breaker,
        writer=writer,
        snapshot=snapshot,
        scheduler=scheduler,
        max_quote_age=settings.scheduler.max_quote_age,
        fetch_timeout=settings.scheduler.live_fetch_timeout,
    )

    return {
        "database": database,
        "price_store": price_store,
        "signal_store": signal_store,
        "client": client,
        "breaker": breaker,
        "snapshot": snapshot,
        "writer": writer,
        "response_cache": response_cache,
        "scheduler": scheduler,
        "price_service": price_service,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: opens the database, warms the snapshot from it, opens the
    HTTP pool and starts the scheduler. On shutdown: reverse order.
    """
    logger = get_logger("goldtracker.main")
    settings: AppSettings = app.state.settings
    components = app.state.components

    for name in (
        "database",
        "breaker",
        "scheduler",
        "price_service",
        "signal_store",
        "response_cache",
    ):
        setattr(app.state, name, components[name])

    await components["database"].connect()
    loaded = await components["writer"].load()
    await components["client"].connect()

    if settings.scheduler.enabled:
        await components["scheduler"].start()

    logger.info(
        "lifespan_started",
        symbols=components["client"].symbols,
        warm_quotes=loaded,
        scheduler=settings.scheduler.enabled,
    )

    yield

    await components["scheduler"].stop()
    await components["response_cache"].close()
    await components["client"].close()
    await components["database"].close()

    logger.info("gold_tracker_stopped")


async def run() -> None:
    """Run the gold tracker API server with its background scheduler."""
    settings = AppSettings()

    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("goldtracker.main")

    components = build_components(settings)

    from goldtracker.api.app import create_app

    app = create_app(lifespan=lifespan, cors_origins=settings.server.cors_origins)
    app.state.settings = settings
    app.state.components = components

    logger.info(
        "starting_gold_tracker",
        host=settings.server.host,
        port=settings.server.port,
        mode=settings.scheduler.mode,
    )

    config = uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
