"""
Rate limiting for the promo code validation endpoint.

In-memory sliding window keyed by an arbitrary subject string such as
"validate:user:42" or "validate:ip:10.0.0.1". Suitable for a single
instance; counters are lost on restart.
"""

import time
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeAlias

from app.config import Settings
from app.exceptions import RateLimitError

Timestamp: TypeAlias = float


@dataclass(frozen=True)
class RateLimitConfig:
    """Maximum requests allowed per window."""

    requests: int
    window_seconds: int


@dataclass(frozen=True)
class ValidationLimits:
    """Limits applied to POST /promo-codes/validate."""

    per_user: RateLimitConfig
    per_ip: RateLimitConfig

    @classmethod
    def from_settings(cls, settings: Settings) -> "ValidationLimits":
        window = settings.validate_rate_limit_window_seconds
        return cls(
            per_user=RateLimitConfig(settings.validate_rate_limit_per_user, window),
            per_ip=RateLimitConfig(settings.validate_rate_limit_per_ip, window),
        )


class RateLimiter:
    """Sliding-window limiter with periodic cleanup of idle subjects."""

    def __init__(
        self,
        timer: Callable[[], float] = time.monotonic,
        cleanup_interval: int = 300,
    ) -> None:
        self._timer = timer
        self._requests: dict[str, list[Timestamp]] = defaultdict(list)
        self._last_cleanup = timer()
        self._cleanup_interval = cleanup_interval

    def _cleanup_expired(self, window_seconds: int) -> None:
        now = self._timer()
        if now - self._last_cleanup < self._cleanup_interval:
            return

        cutoff = now - window_seconds
        for key in list(self._requests):
            recent = [ts for ts in self._requests[key] if ts > cutoff]
            if recent:
                self._requests[key] = recent
            else:
                del self._requests[key]

        self._last_cleanup = now

    def hit(self, checks: Sequence[tuple[str, RateLimitConfig]]) -> None:
        """
        Count one request against every (key, config) pair.

        Nothing is recorded unless all pairs are within their limits.

        Raises:
            RateLimitError: with the longest retry delay among exceeded limits
        """
        now = self._timer()
        retry_after = 0
        windows: list[tuple[str, list[Timestamp]]] = []

        for key, config in checks:
            self._cleanup_expired(config.window_seconds)
            cutoff = now - config.window_seconds
            recent = [ts for ts in self._requests.get(key, []) if ts > cutoff]
            if len(recent) >= config.requests:
                wait = int(min(recent) + config.window_seconds - now) + 1
                retry_after = max(retry_after, wait)
            windows.append((key, recent))

        if retry_after:
            raise RateLimitError(retry_after)

        for key, recent in windows:
            recent.append(now)
            self._requests[key] = recent

    def get_remaining(self, key: str, config: RateLimitConfig) -> int:
        """Requests left for key in the current window."""
        cutoff = self._timer() - config.window_seconds
        recent = sum(1 for ts in self._requests.get(key, []) if ts > cutoff)
        return max(0, config.requests - recent)

    def reset(self) -> None:
        self._requests.clear()


# Singleton instance for application-wide use
rate_limiter = RateLimiter()
