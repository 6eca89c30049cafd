"""Shared data models for the gold tracker backend.

CRITICAL: All monetary values use Decimal. Never use float for prices or changes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

MONEY_QUANTUM = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Quantize a monetary value to cents, rounding half away from zero."""
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


class Metal(str, Enum):
    """Tracked precious metals, keyed by ISO 4217 commodity code."""

    XAU = "XAU"  # gold
    XAG = "XAG"  # silver
    XPT = "XPT"  # platinum
    XPD = "XPD"  # palladium


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class PriceQuote:
    """Latest priced snapshot for one metal.

    Frozen so a reader holding a reference never sees a half-updated quote;
    updates replace the whole object.
    """

    symbol: str
    bid: Decimal
    ask: Decimal
    mid: Decimal
    observed_at: datetime
    previous_close: Decimal | None = None
    day_high: Decimal | None = None
    day_low: Decimal | None = None
    open_price: Decimal | None = None
    change: Decimal | None = None
    change_percent: Decimal | None = None
    persisted_at: datetime | None = None

    def to_dict(self) -> dict:
        """Render as JSON-ready dict (Decimals as strings, datetimes ISO)."""

        def _money(value: Decimal | None) -> str | None:
            return str(value) if value is not None else None

        return {
            "symbol": self.symbol,
            "bid": _money(self.bid),
            "ask": _money(self.ask),
            "mid": _money(self.mid),
            "previous_close": _money(self.previous_close),
            "day_high": _money(self.day_high),
            "day_low": _money(self.day_low),
            "open_price": _money(self.open_price),
            "change": _money(self.change),
            "change_percent": _money(self.change_percent),
            "observed_at": self.observed_at.isoformat(),
            "persisted_at": (
                self.persisted_at.isoformat() if self.persisted_at else None
            ),
        }


@dataclass
class WriteResult:
    """Outcome of a change-aware write for one symbol.

    `written` means the snapshot now holds the new quote; `persisted` means
    the durable store accepted it too.
    """

    symbol: str
    written: bool
    persisted: bool = False
    reason: str = ""


@dataclass
class TickResult:
    """Summary of one refresh pass over all tracked symbols."""

    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.updated) + len(self.unchanged) + len(self.failed)


@dataclass
class Signal:
    """A manually entered trade signal from the signal ledger."""

    id: int
    symbol: str
    trade_type: str
    entry_price: Decimal
    stoploss: Decimal
    current_price: Decimal | None = None
    percentage_change: Decimal = Decimal("0")
    target1: Decimal | None = None
    target2: Decimal | None = None
    target3: Decimal | None = None
    target1_hit: bool = False
    target2_hit: bool = False
    target3_hit: bool = False
    active: bool = True
    send_notifications: bool = True
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict:
        """Render as JSON-ready dict (Decimals as strings)."""
        result: dict = {}
        for key, value in self.__dict__.items():
            result[key] = str(value) if isinstance(value, Decimal) else value
        return result
