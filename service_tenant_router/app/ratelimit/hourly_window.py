"""
Hourly per-(tenant, client IP) request limiter for the tenant router.

The limiter is best-effort: the read and the write of a window counter are
two separate store operations, so concurrent requests from one client can
both read the same count and be admitted together. Any store failure
admits the request.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import RateLimitExceeded

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.kv_store import KeyValueStore
    from shared.metrics import MetricsCollector


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one ``check``."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: Optional[datetime] = None
    error: Optional[str] = None

    def raise_for_denied(self) -> None:
        if not self.allowed:
            raise RateLimitExceeded(self.limit, self.reset_at)

    def headers(self) -> Dict[str, str]:
        """Headers attached to admitted responses."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
            "error": self.error,
        }


class HourlyRateLimiter:
    """Counts requests per ``ratelimit:{tenant_id}:{client_ip}`` key."""

    def __init__(
        self,
        kv_store: "KeyValueStore",
        *,
        window_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.kv_store = kv_store
        self.window_seconds = window_seconds
        self.metrics = metrics
        self.logger = get_logger("router.rate_limiter")
        self._clock = clock

    def _make_key(self, tenant_id: str, client_ip: str) -> str:
        """Generate rate limit key."""
        return f"ratelimit:{tenant_id}:{client_ip}"

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    async def check(self, tenant_id: str, client_ip: str, limit: int) -> RateLimitDecision:
        """Admit or deny one request against the hourly budget."""
        key = self._make_key(tenant_id, client_ip)

        try:
            current_value = await self.kv_store.get(key)
            current_count = int(current_value) if current_value is not None else 0

            if current_count >= limit:
                reset_at = self._now() + timedelta(seconds=self.window_seconds)
                self.logger.warning(
                    "Rate limit exceeded",
                    tenant_id=tenant_id,
                    client_ip=client_ip,
                    current_count=current_count,
                    limit=limit
                )
                if self.metrics:
                    self.metrics.increment_counter("rate_limit_denials_total", tenant=tenant_id)
                return RateLimitDecision(allowed=False, limit=limit, remaining=0, reset_at=reset_at)

            new_count = current_count + 1
            await self.kv_store.put(key, str(new_count), self.window_seconds)

            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - new_count),
            )

        except Exception as e:
            self.logger.error("Rate limit check error", tenant_id=tenant_id, error=str(e))
            return RateLimitDecision(allowed=True, limit=limit, remaining=limit, error=str(e))

    async def reset(self, tenant_id: str, client_ip: str) -> bool:
        """Reset the window for one (tenant, client) pair."""
        try:
            await self.kv_store.delete(self._make_key(tenant_id, client_ip))
            self.logger.info("Rate limit reset", tenant_id=tenant_id, client_ip=client_ip)
            return True
        except Exception as e:
            self.logger.error("Rate limit reset error", error=str(e))
            return False
