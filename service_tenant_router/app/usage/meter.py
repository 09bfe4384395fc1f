"""
Per-tenant daily API call metering.

Counts live in the key/value store under ``usage:{tenant_id}:{yyyy-mm-dd}``
(UTC day) for ``retention_days``. Every ``flush_every``-th increment also
writes a snapshot to the registry's ``tenant_usage`` table. Reads and
writes are separate operations, so counts and flush boundaries are
approximate under concurrency.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Set, TYPE_CHECKING

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.kv_store import KeyValueStore
    from shared.metrics import MetricsCollector
    from ..adapters.registry_client import TenantRegistryClient


class UsageMeter:
    """Fire-and-forget usage counter. Never raises into the request path."""

    def __init__(
        self,
        kv_store: "KeyValueStore",
        registry: "TenantRegistryClient",
        *,
        flush_every: int = 100,
        retention_days: int = 7,
        clock: Callable[[], float] = time.time,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.kv_store = kv_store
        self.registry = registry
        self.flush_every = flush_every
        self.retention_seconds = retention_days * 86400
        self.metrics = metrics
        self.logger = get_logger("router.usage_meter")
        self._clock = clock
        self._pending: Set[asyncio.Task] = set()

    def _today(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).strftime("%Y-%m-%d")

    def _make_key(self, tenant_id: str, date: str) -> str:
        return f"usage:{tenant_id}:{date}"

    async def record(self, tenant_id: str) -> Optional[int]:
        """Increment today's counter; returns the new count, or None on failure."""
        date = self._today()
        key = self._make_key(tenant_id, date)

        try:
            current_value = await self.kv_store.get(key)
            count = (int(current_value) if current_value is not None else 0) + 1
            await self.kv_store.put(key, str(count), self.retention_seconds)
        except Exception as e:
            self.logger.error("Usage tracking error", tenant_id=tenant_id, error=str(e))
            return None

        if count % self.flush_every == 0:
            await self._flush(tenant_id, date, count)

        return count

    async def _flush(self, tenant_id: str, date: str, count: int) -> None:
        try:
            await self.registry.record_usage(tenant_id, date, count)
        except Exception as e:
            self.logger.error("Usage flush failed", tenant_id=tenant_id, api_calls=count, error=str(e))
            if self.metrics:
                self.metrics.increment_counter("usage_flushes_total", result="error")
            return

        self.logger.info("Usage flushed", tenant_id=tenant_id, date=date, api_calls=count)
        if self.metrics:
            self.metrics.increment_counter("usage_flushes_total", result="ok")

    def schedule(self, tenant_id: str) -> asyncio.Task:
        """Record in a detached task; the caller does not wait for it."""
        task = asyncio.create_task(self.record(tenant_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for in-flight records, e.g. on shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
