"""
Cache Layer - Injected key-value cache with per-entry TTL.

Promo code lookups and derived booleans are memoized for a short time to
reduce store load. Entries are disposable projections, never a source of
truth: a failure inside the cache itself degrades to computing the value
directly, while errors raised by the compute function always propagate.

Key naming and TTLs live in CachePolicy so the engine never hard-codes them:
- promo_code:{code}                      60s  code lookup
- promo_restricted:{promo_id}            60s  "has any grant" flag
- promo_access:{promo_id}:user:{user_id} 60s  per-user grant membership
- promo_usage:{promo_id}:user:{user_id}  60s  per-user usage count
- all_promo_codes                        10m  admin listing
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from cachetools import TLRUCache  # type: ignore[import-untyped]
from structlog import get_logger

from app.config import Settings
from app.observability.metrics import metrics

logger = get_logger(__name__)

T = TypeVar("T")

_MISSING = object()


@dataclass(frozen=True)
class CachePolicy:
    """Cache key templates and TTLs for promo code data."""

    code_ttl: int = 60
    restricted_ttl: int = 60
    access_ttl: int = 60
    usage_ttl: int = 60
    listing_ttl: int = 600
    listing_key: str = "all_promo_codes"

    @classmethod
    def from_settings(cls, settings: Settings) -> "CachePolicy":
        """Build a policy from application settings."""
        ttl = settings.promo_cache_ttl_seconds
        return cls(
            code_ttl=ttl,
            restricted_ttl=ttl,
            access_ttl=ttl,
            usage_ttl=ttl,
            listing_ttl=settings.promo_list_cache_ttl_seconds,
        )

    def code_key(self, code: str) -> str:
        return f"promo_code:{code}"

    def restricted_key(self, promo_id: int) -> str:
        return f"promo_restricted:{promo_id}"

    def access_key(self, promo_id: int, user_id: int) -> str:
        return f"promo_access:{promo_id}:user:{user_id}"

    def usage_key(self, promo_id: int, user_id: int) -> str:
        return f"promo_usage:{promo_id}:user:{user_id}"


class CacheBackend(Protocol):
    """Capability the promo code engine is constructed with."""

    async def get_or_compute(
        self, key: str, ttl: int, compute: Callable[[], Awaitable[T]]
    ) -> T: ...

    def invalidate(self, key: str) -> None: ...

    def clear(self) -> None: ...


def _time_to_use(key: str, value: tuple[int, Any], now: float) -> float:
    """Expiry for an entry stored as (ttl_seconds, payload)."""
    return now + value[0]


def _key_family(key: str) -> str:
    return key.split(":", 1)[0]


class MemoryCache:
    """
    In-process cache backed by cachetools.TLRUCache.

    Each entry carries its own TTL. None results are not stored, so a lookup
    for a code that does not exist yet is retried on the next call.
    """

    def __init__(
        self,
        maxsize: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: TLRUCache[str, tuple[int, Any]] = TLRUCache(
            maxsize=maxsize, ttu=_time_to_use, timer=timer
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    async def get_or_compute(
        self, key: str, ttl: int, compute: Callable[[], Awaitable[T]]
    ) -> T:
        """Return the cached value for key, computing and storing it on a miss."""
        try:
            entry = self._entries.get(key, _MISSING)
        except Exception:
            logger.warning("cache_read_failed", key=key, exc_info=True)
            return await compute()

        if entry is not _MISSING:
            metrics.record_cache(_key_family(key), hit=True)
            cached: T = entry[1]
            return cached

        metrics.record_cache(_key_family(key), hit=False)
        value = await compute()

        if value is not None:
            try:
                self._entries[key] = (ttl, value)
            except Exception:
                logger.warning("cache_write_failed", key=key, exc_info=True)

        return value

    def invalidate(self, key: str) -> None:
        """Forget a single key; missing keys are ignored."""
        try:
            self._entries.pop(key, None)
        except Exception:
            logger.warning("cache_invalidate_failed", key=key, exc_info=True)

    def clear(self) -> None:
        """Forget every entry."""
        self._entries.clear()
