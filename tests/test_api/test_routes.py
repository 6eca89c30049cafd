"""HTTP-level tests for the JSON API.

The app is built without its lifespan; app.state is populated directly
from the components build_components would create, with the fake price
source in place of the HTTP client.
"""

from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from goldtracker.api.app import create_app
from goldtracker.cache.response_cache import ResponseCache
from goldtracker.data.signals import SignalStore
from goldtracker.data.store import PriceStore
from goldtracker.exceptions import SourceHttpError
from goldtracker.market_data.circuit_breaker import CircuitBreaker
from goldtracker.market_data.price_service import PriceService
from goldtracker.market_data.scheduler import RefreshScheduler
from goldtracker.market_data.snapshot import PriceSnapshot
from goldtracker.market_data.writer import ChangeAwareWriter


@pytest.fixture
def app(settings, database, fake_source):
    snapshot = PriceSnapshot()
    writer = ChangeAwareWriter(snapshot, PriceStore(database))
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30.0)
    cache = ResponseCache(deadline=settings.cache.deadline)
    scheduler = RefreshScheduler(
        client=fake_source,
        breaker=breaker,
        writer=writer,
        settings=settings.scheduler,
        cache=cache,
        invalidate_prefixes=settings.cache.invalidate_prefixes,
    )

    app = create_app()
    app.state.settings = settings
    app.state.database = database
    app.state.breaker = breaker
    app.state.scheduler = scheduler
    app.state.response_cache = cache
    app.state.signal_store = SignalStore(database)
    app.state.price_service = PriceService(
        client=fake_source,
        breaker=breaker,
        writer=writer,
        snapshot=snapshot,
        scheduler=scheduler,
        max_quote_age=settings.scheduler.max_quote_age,
    )
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestPriceEndpoints:
    @pytest.mark.asyncio
    async def test_prices_fetched_live_before_first_tick(self, client, fake_source) -> None:
        response = await client.get("/api/prices")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert set(body["prices"]) == {"XAU", "XAG", "XPT", "XPD"}
        assert body["stale"] is False
        assert body["stale_symbols"] == []
        assert body["unavailable"] == []
        assert fake_source.total_calls == 4

    @pytest.mark.asyncio
    async def test_prices_lists_unavailable_symbol(self, client, fake_source) -> None:
        fake_source.set("XPD", SourceHttpError(500))

        body = (await client.get("/api/prices")).json()

        assert "XPD" not in body["prices"]
        assert body["unavailable"] == ["XPD"]
        assert len(body["prices"]) == 3

    @pytest.mark.asyncio
    async def test_prices_after_refresh(self, client) -> None:
        refresh = await client.post("/api/prices/refresh")
        assert refresh.json()["updated"] == 4

        body = (await client.get("/api/prices")).json()

        assert set(body["prices"]) == {"XAU", "XAG", "XPT", "XPD"}
        assert body["prices"]["XAU"]["mid"] == "2001.00"
        assert body["prices"]["XPD"]["change"] == "10.00"

    @pytest.mark.asyncio
    async def test_prices_cached_until_refresh_invalidates(self, client) -> None:
        first = await client.get("/api/prices")
        second = await client.get("/api/prices")
        assert first.headers["X-Cache"] == "fresh"
        assert second.headers["X-Cache"] == "cache"

        await client.post("/api/prices/refresh")
        third = await client.get("/api/prices")

        assert third.headers["X-Cache"] == "fresh"
        assert len(third.json()["prices"]) == 4

    @pytest.mark.asyncio
    async def test_single_price_case_insensitive(self, client) -> None:
        response = await client.get("/api/prices/xau")

        assert response.status_code == 200
        assert response.json()["price"]["symbol"] == "XAU"

    @pytest.mark.asyncio
    async def test_unknown_symbol_is_400(self, client, fake_source) -> None:
        response = await client.get("/api/prices/BTC")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "invalid_symbol"
        assert fake_source.total_calls == 0

    @pytest.mark.asyncio
    async def test_live_price(self, client, fake_source) -> None:
        response = await client.get("/api/metals/XPT/price")

        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "XPT"
        assert body["mid"] == "950.00"
        assert fake_source.calls["XPT"] == 1

    @pytest.mark.asyncio
    async def test_source_failure_is_502(self, client, fake_source) -> None:
        fake_source.set("XAG", SourceHttpError(500))

        response = await client.get("/api/metals/XAG/price")

        assert response.status_code == 502
        assert response.json()["error"] == "price_source_error"

    @pytest.mark.asyncio
    async def test_open_circuit_is_503_with_retry_after(self, client, fake_source) -> None:
        fake_source.set("XAG", SourceHttpError(500))
        await client.get("/api/metals/XAG/price")

        response = await client.get("/api/metals/XAU/price")

        assert response.status_code == 503
        assert response.json()["error"] == "price_source_unavailable"
        assert int(response.headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    async def test_no_quote_with_open_circuit_is_404(self, client, fake_source) -> None:
        fake_source.set("XAG", SourceHttpError(500))
        await client.get("/api/prices/XAG")

        response = await client.get("/api/prices/XPD")

        assert response.status_code == 404
        assert response.json()["error"] == "price_not_found"

    @pytest.mark.asyncio
    async def test_failure_after_success_serves_stale_fallback(
        self, client, app, fake_source
    ) -> None:
        ok = await client.get("/api/metals/XAU/price")
        assert ok.status_code == 200
        app.state.response_cache.invalidate_prefix("GET /api/metals")
        fake_source.set("XAU", SourceHttpError(503))

        response = await client.get("/api/metals/XAU/price")

        assert response.status_code == 200
        assert response.headers["X-Cache"] == "fallback"
        body = response.json()
        assert body["stale"] is True
        assert body["mid"] == ok.json()["mid"]

    @pytest.mark.asyncio
    async def test_health(self, client) -> None:
        await client.post("/api/prices/refresh")

        body = (await client.get("/api/health")).json()

        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["circuit_breaker"]["state"] == "closed"
        assert body["scheduler"]["running"] is False
        assert len(body["scheduler"]["last_tick"]["updated"]) == 4


class TestStalePrices:
    """Quotes outside the freshness window are tagged when served."""

    @pytest.fixture
    def settings(self, settings):
        settings.scheduler.max_quote_age = 0.0
        return settings

    @pytest.mark.asyncio
    async def test_outage_serves_old_quotes_tagged_stale(self, client, fake_source) -> None:
        await client.post("/api/prices/refresh")
        for symbol in fake_source.symbols:
            fake_source.set(symbol, SourceHttpError(503))

        response = await client.get("/api/prices")

        assert response.status_code == 200
        assert response.headers["X-Cache"] == "fresh"
        body = response.json()
        assert body["stale"] is True
        assert sorted(body["stale_symbols"]) == ["XAG", "XAU", "XPD", "XPT"]
        assert body["prices"]["XAU"]["mid"] == "2001.00"

    @pytest.mark.asyncio
    async def test_single_price_tagged_stale(self, client, fake_source) -> None:
        await client.post("/api/prices/refresh")
        fake_source.set("XAG", SourceHttpError(503))

        body = (await client.get("/api/prices/XAG")).json()

        assert body["stale"] is True
        assert body["price"]["mid"] == "23.50"


class TestSignalEndpoints:
    @pytest.mark.asyncio
    async def test_create_list_and_get(self, client) -> None:
        created = await client.post(
            "/api/signals",
            json={
                "symbol": "xau",
                "trade_type": "buy",
                "entry_price": "2000.00",
                "stoploss": "1980.00",
                "target1": "2020.00",
            },
        )
        assert created.status_code == 201
        signal_id = created.json()["signal_id"]

        listed = (await client.get("/api/signals")).json()
        assert listed["count"] == 1
        assert listed["signals"][0]["symbol"] == "XAU"
        assert listed["signals"][0]["trade_type"] == "BUY"

        one = (await client.get(f"/api/signals/{signal_id}")).json()
        assert Decimal(one["signal"]["entry_price"]) == Decimal("2000.00")

    @pytest.mark.asyncio
    async def test_create_invalidates_cached_list(self, client) -> None:
        empty = await client.get("/api/signals")
        assert empty.json()["count"] == 0

        await client.post(
            "/api/signals",
            json={"symbol": "XAG", "trade_type": "SELL", "entry_price": 24, "stoploss": 25},
        )

        after = await client.get("/api/signals")
        assert after.headers["X-Cache"] == "fresh"
        assert after.json()["count"] == 1

    @pytest.mark.asyncio
    async def test_missing_fields_is_400(self, client) -> None:
        response = await client.post("/api/signals", json={"symbol": "XAU"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_request"
        assert "entry_price" in body["detail"]

    @pytest.mark.asyncio
    async def test_update_and_statistics(self, client) -> None:
        created = await client.post(
            "/api/signals",
            json={"symbol": "XAU", "trade_type": "BUY", "entry_price": 2000, "stoploss": 1980},
        )
        signal_id = created.json()["signal_id"]

        updated = await client.put(
            f"/api/signals/{signal_id}", json={"target1_hit": True, "active": False}
        )
        assert updated.status_code == 200

        stats = (await client.get("/api/statistics")).json()["statistics"]
        assert stats["total"] == 1
        assert stats["closed"] == 1
        assert stats["target1_hits"] == 1

        active = (await client.get("/api/signals", params={"active": "true"})).json()
        assert active["count"] == 0

    @pytest.mark.asyncio
    async def test_unknown_signal_is_404(self, client) -> None:
        assert (await client.get("/api/signals/999")).status_code == 404
        assert (await client.delete("/api/signals/999")).status_code == 404
        response = await client.put("/api/signals/999", json={"active": False})
        assert response.status_code == 404
        assert response.json()["error"] == "signal_not_found"

    @pytest.mark.asyncio
    async def test_delete(self, client) -> None:
        created = await client.post(
            "/api/signals",
            json={"symbol": "XPT", "trade_type": "BUY", "entry_price": 950, "stoploss": 940},
        )
        signal_id = created.json()["signal_id"]

        response = await client.delete(f"/api/signals/{signal_id}")

        assert response.json()["changes"] == 1
        assert (await client.get(f"/api/signals/{signal_id}")).status_code == 404
