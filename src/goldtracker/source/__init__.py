"""External price source -- client contract, HTTP implementation, normalization."""

from goldtracker.source.client import PriceSourceClient
from goldtracker.source.http_client import HttpPriceSourceClient
from goldtracker.source.normalize import normalize_quote

__all__ = ["HttpPriceSourceClient", "PriceSourceClient", "normalize_quote"]
