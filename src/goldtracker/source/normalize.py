"""Normalization of raw price source payloads into PriceQuote objects.

The source returns a flat JSON object whose price fields vary between
responses. Precedence rules, applied in this order:

- ask side: ``ask``, else ``price``
- bid side: ``bid``, else ``price``
- mid: ``(ask + bid) / 2`` computed on the unrounded values
- change: ``mid - prev_close_price``; change_percent relative to prev close

A payload with neither side resolvable is malformed. Every monetary field
is rounded to cents with ROUND_HALF_UP after derivation.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from goldtracker.exceptions import MalformedResponseError, SourceApiError
from goldtracker.models import PriceQuote, round_money

# Epoch values above this are treated as milliseconds
_EPOCH_MS_CUTOFF = 100_000_000_000


def _to_decimal(payload: dict[str, Any], key: str) -> Decimal | None:
    """Read an optional numeric field as Decimal.

    Missing and null fields return None; anything present that is not a
    finite number raises MalformedResponseError.
    """
    raw = payload.get(key)
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise MalformedResponseError(f"Field {key!r} is not numeric: {raw!r}")
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError) as exc:
        raise MalformedResponseError(f"Field {key!r} is not numeric: {raw!r}") from exc
    if not value.is_finite():
        raise MalformedResponseError(f"Field {key!r} is not finite: {raw!r}")
    return value


def parse_timestamp(raw: Any, fallback: datetime) -> datetime:
    """Parse a source timestamp into an aware UTC datetime.

    Accepts epoch seconds, epoch milliseconds, or ISO-8601 strings. Anything
    else returns `fallback`.
    """
    if raw is None or isinstance(raw, bool):
        return fallback
    if isinstance(raw, (int, float)):
        seconds = raw / 1000 if raw > _EPOCH_MS_CUTOFF else raw
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback
    if isinstance(raw, str):
        text = raw.strip()
        if text.isdigit():
            return parse_timestamp(int(text), fallback)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return fallback
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    return fallback


def normalize_quote(
    symbol: str,
    payload: Any,
    received_at: datetime | None = None,
) -> PriceQuote:
    """Turn a decoded source body into a PriceQuote.

    Args:
        symbol: Metal symbol the payload was fetched for.
        payload: Decoded JSON body.
        received_at: Time the response arrived; used when the body has no
            usable timestamp. Defaults to now.

    Raises:
        SourceApiError: The body carries an ``error`` field.
        MalformedResponseError: The body is empty, not an object, or has no
            resolvable bid/ask.
    """
    if received_at is None:
        received_at = datetime.now(timezone.utc)

    if not isinstance(payload, dict) or not payload:
        raise MalformedResponseError(f"Empty or non-object response for {symbol}")

    error = payload.get("error")
    if error:
        raise SourceApiError(f"Price source error for {symbol}: {error}")

    price = _to_decimal(payload, "price")
    ask = _to_decimal(payload, "ask")
    bid = _to_decimal(payload, "bid")
    if ask is None:
        ask = price
    if bid is None:
        bid = price
    if ask is None or bid is None:
        raise MalformedResponseError(f"No ask/bid/price in response for {symbol}")

    mid = (ask + bid) / 2
    previous_close = _to_decimal(payload, "prev_close_price")

    change: Decimal | None = None
    change_percent: Decimal | None = None
    if previous_close is not None and previous_close != 0:
        change = mid - previous_close
        change_percent = round_money(change / previous_close * 100)
        change = round_money(change)

    day_high = _to_decimal(payload, "high_24h")
    day_low = _to_decimal(payload, "low_24h")
    open_price = _to_decimal(payload, "open_price")

    return PriceQuote(
        symbol=symbol,
        bid=round_money(bid),
        ask=round_money(ask),
        mid=round_money(mid),
        previous_close=round_money(previous_close) if previous_close is not None else None,
        day_high=round_money(day_high) if day_high is not None else None,
        day_low=round_money(day_low) if day_low is not None else None,
        open_price=round_money(open_price) if open_price is not None else None,
        change=change,
        change_percent=change_percent,
        observed_at=parse_timestamp(payload.get("timestamp"), received_at),
    )
