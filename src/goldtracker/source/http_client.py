"""HTTP price source client implementation via httpx async.

One GET per attempt against ``{base_url}{path_template}`` with the access
credential in a header. Transient failures (timeouts, connection errors,
429 and 5xx answers) are retried with exponential backoff; everything else
is raised on the first attempt.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import httpx

from goldtracker.config import PriceSourceSettings
from goldtracker.exceptions import (
    MalformedResponseError,
    PriceSourceError,
    SourceHttpError,
    SourceNetworkError,
    SourceTimeoutError,
    UnsupportedSymbolError,
)
from goldtracker.logging import get_logger
from goldtracker.models import PriceQuote
from goldtracker.source.client import PriceSourceClient
from goldtracker.source.normalize import normalize_quote

logger = get_logger(__name__)


class HttpPriceSourceClient(PriceSourceClient):
    """Concrete quote client using a shared httpx.AsyncClient.

    Args:
        settings: Source endpoint, credential, symbol mapping and retry policy.
        transport: Optional httpx transport, used by tests to stub the network.
        sleep: Awaitable used between retries (injectable for tests).
    """

    def __init__(
        self,
        settings: PriceSourceSettings,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._sleep = sleep
        self._http: httpx.AsyncClient | None = None
        self._connect_lock = asyncio.Lock()

    @property
    def symbols(self) -> list[str]:
        return list(self._settings.symbols)

    async def connect(self) -> None:
        """Create the pooled HTTP client.

        Safe to call more than once, and concurrently; the lock makes the
        check-and-create atomic so only one client is ever built.
        """
        async with self._connect_lock:
            if self._http is not None:
                return
            headers = {"Accept": "application/json", "User-Agent": "GoldTracker/1.0"}
            api_key = self._settings.api_key.get_secret_value()
            if api_key:
                header = self._settings.api_key_header
                headers[header] = (
                    f"Bearer {api_key}" if header.lower() == "authorization" else api_key
                )
            self._http = httpx.AsyncClient(
                base_url=self._settings.base_url,
                headers=headers,
                timeout=httpx.Timeout(self._settings.request_timeout),
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
                transport=self._transport,
            )
            logger.info(
                "price_source_connected",
                base_url=self._settings.base_url,
                symbols=self.symbols,
            )

    async def close(self) -> None:
        """Close pooled connections if open."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.info("price_source_closed")

    async def fetch_quote(self, symbol: str) -> PriceQuote:
        """Fetch one symbol with retry on transient failures."""
        ticker = self._settings.symbols.get(symbol)
        if ticker is None:
            raise UnsupportedSymbolError(symbol)
        if self._http is None:
            await self.connect()
        return await self._fetch_with_retry(symbol, ticker)

    async def _fetch_with_retry(self, symbol: str, ticker: str) -> PriceQuote:
        """Execute a single-symbol fetch with exponential backoff retry.

        Delays are base_delay * 2**attempt (0.5s, 1s, ... by default).
        Non-transient errors and the final transient error are re-raised.
        """
        max_attempts = max(1, self._settings.max_attempts)
        base_delay = self._settings.retry_base_delay

        for attempt in range(max_attempts):
            try:
                return await self._fetch_once(symbol, ticker)
            except PriceSourceError as e:
                if not e.transient:
                    logger.warning(
                        "price_fetch_rejected",
                        symbol=symbol,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    raise
                if attempt == max_attempts - 1:
                    logger.error(
                        "price_fetch_failed_permanently",
                        symbol=symbol,
                        error=str(e),
                        attempts=max_attempts,
                    )
                    raise

                delay = base_delay * (2**attempt)
                logger.warning(
                    "price_fetch_retry",
                    symbol=symbol,
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    delay=delay,
                    error=str(e),
                )
                await self._sleep(delay)

        raise AssertionError("unreachable")  # Satisfies type checker

    async def _fetch_once(self, symbol: str, ticker: str) -> PriceQuote:
        """Perform one GET and normalize the body. Maps httpx errors to ours."""
        assert self._http is not None
        path = self._settings.path_template.format(ticker=ticker, symbol=symbol)

        try:
            response = await self._http.get(path)
        except httpx.TimeoutException as exc:
            raise SourceTimeoutError(f"Timed out fetching {symbol}") from exc
        except httpx.TransportError as exc:
            raise SourceNetworkError(f"Network error fetching {symbol}: {exc}") from exc

        if response.status_code >= 400:
            raise SourceHttpError(response.status_code)

        received_at = datetime.now(timezone.utc)
        if not response.content:
            raise MalformedResponseError(f"Empty response body for {symbol}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Non-JSON response for {symbol}") from exc

        quote = normalize_quote(symbol, payload, received_at)
        logger.debug("price_fetched", symbol=symbol, mid=str(quote.mid))
        return quote
