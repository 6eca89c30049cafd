"""Response caching with last-known-good fallback."""

from goldtracker.cache.response_cache import CachedResponse, ResponseCache, make_cache_key

__all__ = ["CachedResponse", "ResponseCache", "make_cache_key"]
