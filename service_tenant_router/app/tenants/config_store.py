"""
TTL-caching tenant configuration store.

Lookup order for ``load(slug)``:

1. process-local map (per-entry expiry, default 300s)
2. shared key/value store, ``tenant:{slug}`` (I/O errors ignored)
3. tenant registry (single fetch, errors propagate)

Validation runs on every row that enters the process-local map, so cached
and fresh rows go through the same status and subscription checks. There
is no stale fallback: a registry failure fails the request.

Shared entries carry the time of the registry read. A process that picks
an entry up expires it at ``fetched_at + ttl``, so a row is never served
longer than one TTL after the registry returned it.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, TYPE_CHECKING
from urllib.parse import quote

from pydantic import ValidationError

from shared.errors import (
    CacheStoreError,
    ConfigStoreTransientError,
    GatewayException,
    SubscriptionInvalid,
    TenantInactive,
    TenantNotFound,
)
from shared.logging import get_logger
from .models import INVALID_SUBSCRIPTIONS, TenantConfig, TenantStatus

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.kv_store import KeyValueStore
    from shared.metrics import MetricsCollector
    from ..adapters.registry_client import TenantRegistryClient


DEFAULT_CONFIG_TTL = 300


def _header_safe(value: str) -> str:
    try:
        value.encode("ascii")
    except UnicodeEncodeError:
        return quote(value, safe=" ")
    return value


@dataclass(frozen=True)
class TenantBackend:
    """Prepared connection details for one tenant's backend."""

    slug: str
    base_url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    region: str = ""

    @classmethod
    def from_config(cls, config: TenantConfig) -> "TenantBackend":
        return cls(
            slug=config.slug,
            base_url=config.backend_url.rstrip("/"),
            headers={
                "apikey": config.backend_credential,
                "X-Tenant-ID": config.slug,
                "X-Tenant-Name": _header_safe(config.name or config.display_name),
            },
            region=config.region,
        )


class ConfigStore:
    """Turns tenant slugs into validated ``TenantConfig`` records."""

    def __init__(
        self,
        registry: "TenantRegistryClient",
        *,
        kv_store: Optional["KeyValueStore"] = None,
        ttl_seconds: int = DEFAULT_CONFIG_TTL,
        default_max_api_calls_per_hour: int = 10000,
        clock: Callable[[], float] = time.time,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.registry = registry
        self.kv_store = kv_store
        self.ttl_seconds = ttl_seconds
        self.default_max_api_calls_per_hour = default_max_api_calls_per_hour
        self.metrics = metrics
        self.logger = get_logger("router.config_store")
        self._clock = clock

        self._entries: Dict[str, Tuple[TenantConfig, float]] = {}
        self._active_backend: Optional[TenantBackend] = None

    def _cache_key(self, slug: str) -> str:
        return f"tenant:{slug}"

    def _count(self, layer: str, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("config_cache_total", layer=layer, result=result)

    async def load(self, slug: str) -> TenantConfig:
        """Return the config for ``slug``.

        Raises TenantNotFound, TenantInactive, SubscriptionInvalid, or
        ConfigStoreTransientError when the registry cannot be read.
        """
        entry = self._entries.get(slug)
        if entry is not None and entry[1] > self._clock():
            self._count("memory", "hit")
            return entry[0]
        self._count("memory", "miss")

        shared = await self._load_shared(slug)
        if shared is not None:
            config, fetched_at = shared
        else:
            row = await self.registry.fetch_tenant(slug)
            fetched_at = self._clock()
            self._count("registry", "hit" if row else "miss")
            if row is None:
                raise TenantNotFound(slug)
            config = self._validate(slug, row)
            await self._store_shared(slug, row, fetched_at)

        self._entries[slug] = (config, fetched_at + self.ttl_seconds)
        self.logger.info("Tenant config loaded", slug=slug, tenant=config.redacted())
        return config

    def _validate(self, slug: str, row: Dict[str, Any]) -> TenantConfig:
        try:
            config = TenantConfig.from_registry_row(
                row,
                default_max_api_calls_per_hour=self.default_max_api_calls_per_hour,
            )
        except (KeyError, TypeError, ValidationError) as exc:
            self.logger.error("Malformed tenant record", slug=slug, error=str(exc))
            raise ConfigStoreTransientError(
                "Malformed tenant record",
                details={"slug": slug}
            ) from exc

        if config.status is not TenantStatus.ACTIVE:
            raise TenantInactive(slug, config.status.value)

        if config.subscription_status in INVALID_SUBSCRIPTIONS:
            raise SubscriptionInvalid(slug, config.subscription_status.value)

        return config

    async def _load_shared(self, slug: str) -> Optional[Tuple[TenantConfig, float]]:
        if self.kv_store is None:
            return None

        try:
            cached = await self.kv_store.get(self._cache_key(slug))
        except CacheStoreError as exc:
            self.logger.warning("Tenant cache read error", slug=slug, error=str(exc))
            return None

        if cached is None:
            self._count("shared", "miss")
            return None

        try:
            entry = json.loads(cached)
            row = entry["row"]
            fetched_at = float(entry["fetched_at"])
        except (ValueError, TypeError, KeyError):
            self.logger.warning("Discarding unreadable cached tenant row", slug=slug)
            return None

        if fetched_at + self.ttl_seconds <= self._clock():
            self._count("shared", "stale")
            return None

        try:
            config = self._validate(slug, row)
        except ConfigStoreTransientError:
            return None
        self._count("shared", "hit")
        return config, fetched_at

    async def _store_shared(self, slug: str, row: Dict[str, Any], fetched_at: float) -> None:
        if self.kv_store is None:
            return
        entry = json.dumps({"fetched_at": fetched_at, "row": row})
        try:
            await self.kv_store.put(self._cache_key(slug), entry, self.ttl_seconds)
        except CacheStoreError as exc:
            self.logger.warning("Tenant cache write error", slug=slug, error=str(exc))

    async def invalidate(self, slug: Optional[str] = None) -> None:
        """Drop one slug (local and shared entry) or the whole local cache."""
        if slug is None:
            self._entries.clear()
            self._active_backend = None
            self.logger.info("Tenant config cache cleared")
            return

        self._entries.pop(slug, None)
        if self._active_backend is not None and self._active_backend.slug == slug:
            self._active_backend = None

        if self.kv_store is not None:
            try:
                await self.kv_store.delete(self._cache_key(slug))
            except CacheStoreError as exc:
                self.logger.warning("Tenant cache delete error", slug=slug, error=str(exc))
        self.logger.info("Tenant config invalidated", slug=slug)

    async def preload(self, slugs: Iterable[str]) -> Dict[str, str]:
        """Warm several slugs concurrently. Returns ``{slug: "ok" | error}``."""
        unique = list(dict.fromkeys(slugs))
        results = await asyncio.gather(*(self.load(slug) for slug in unique), return_exceptions=True)

        summary: Dict[str, str] = {}
        for slug, outcome in zip(unique, results):
            if isinstance(outcome, GatewayException):
                self.logger.warning("Tenant preload failed", slug=slug, error=outcome.message)
                summary[slug] = outcome.message
            elif isinstance(outcome, Exception):
                self.logger.error("Tenant preload failed", slug=slug, error=str(outcome))
                summary[slug] = str(outcome)
            else:
                summary[slug] = "ok"
        return summary

    def backend_for(self, config: TenantConfig) -> TenantBackend:
        """Backend handle for ``config``, reused while the same tenant stays active."""
        active = self._active_backend
        if (
            active is not None
            and active.slug == config.slug
            and active.base_url == config.backend_url.rstrip("/")
            and active.headers.get("apikey") == config.backend_credential
        ):
            return active

        backend = TenantBackend.from_config(config)
        self._active_backend = backend
        return backend

    def cached_slugs(self) -> Tuple[str, ...]:
        now = self._clock()
        return tuple(slug for slug, (_, expires_at) in self._entries.items() if expires_at > now)
