"""Process-local TTL cache for read-mostly lookups such as the product catalog."""

import time

_cache: dict[str, tuple[object, float]] = {}
_clock = time.monotonic


def get_cached(key: str, default=None):
    try:
        value, expires_at = _cache[key]
    except KeyError:
        return default
    if _clock() >= expires_at:
        # Expired entries are dropped on read; there is no background sweep.
        _cache.pop(key, None)
        return default
    return value


def set_cached(key: str, value, ttl_seconds: float = 60) -> None:
    if ttl_seconds <= 0:
        _cache.pop(key, None)
        return
    _cache[key] = (value, _clock() + ttl_seconds)

