"""
Tenant router service: the edge gateway in front of every tenant backend.
"""

import time
from typing import Callable, Dict, Optional

import httpx
from fastapi import Request

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import CacheStoreError
from shared.kv_store import KeyValueStore, create_kv_store
from .adapters.registry_client import TenantRegistryClient
from .domain.handler import GatewayHandler
from .identity.resolver import DeploymentSurface, IdentityResolver
from .proxy.request_proxy import RequestProxy
from .ratelimit.hourly_window import HourlyRateLimiter
from .tenants.config_store import ConfigStore
from .usage.meter import UsageMeter


PROXIED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


class TenantRouterService(BaseService):
    """Tenant router service implementation.

    Collaborators are built once here and handed to the handler; tests
    swap the key/value store, the outbound transports and the clock.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        kv_store: Optional[KeyValueStore] = None,
        registry_transport: Optional[httpx.AsyncBaseTransport] = None,
        backend_transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(
            "router",
            8000,
            config or get_config("router", 8000),
            ops_prefix="/_gateway",
            cors_middleware=False,
        )

        self.kv_store = kv_store or create_kv_store(self.config.redis_url, clock=clock)

        self.registry_client = TenantRegistryClient(
            self.config.registry_url,
            self.config.registry_key,
            client=httpx.AsyncClient(transport=registry_transport, timeout=10.0) if registry_transport else None,
        )
        self.config_store = ConfigStore(
            self.registry_client,
            kv_store=self.kv_store,
            ttl_seconds=self.config.config_cache_ttl_seconds,
            default_max_api_calls_per_hour=self.config.default_max_api_calls_per_hour,
            clock=clock,
            metrics=self.metrics,
        )
        self.rate_limiter = HourlyRateLimiter(
            self.kv_store,
            window_seconds=self.config.rate_limit_window_seconds,
            clock=clock,
            metrics=self.metrics,
        )
        self.usage_meter = UsageMeter(
            self.kv_store,
            self.registry_client,
            flush_every=self.config.usage_flush_every,
            retention_days=self.config.usage_retention_days,
            clock=clock,
            metrics=self.metrics,
        )
        self.proxy = RequestProxy(
            client=httpx.AsyncClient(
                transport=backend_transport,
                timeout=self.config.upstream_timeout_seconds,
            ) if backend_transport else None,
            timeout=self.config.upstream_timeout_seconds,
            metrics=self.metrics,
        )
        self.handler = GatewayHandler(
            IdentityResolver(DeploymentSurface.EDGE),
            self.config_store,
            self.rate_limiter,
            self.proxy,
            self.usage_meter,
            metrics=self.metrics,
        )

        @self.app.on_event("startup")
        async def _startup():
            await self.kv_store.start()
            self.logger.info(
                "Tenant router started",
                registry_url=self.config.registry_url,
                config_cache_ttl_seconds=self.config.config_cache_ttl_seconds
            )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.usage_meter.drain()
            await self.proxy.close()
            await self.registry_client.close()
            await self.kv_store.close()

        self._setup_router_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.router_service = self

    def _setup_router_routes(self):
        """Catch-all route; registered after the ops routes so those win."""

        @self.app.api_route("/{path:path}", methods=PROXIED_METHODS, include_in_schema=False)
        async def route_tenant_request(path: str, request: Request):
            return await self.handler.handle(request)

    async def _check_dependencies(self) -> Dict[str, str]:
        try:
            await self.kv_store.get("health:ping")
            kv_status = "ok"
        except CacheStoreError as e:
            self.logger.warning("Key/value store health check failed", error=str(e))
            kv_status = "degraded"
        return {
            "kv_store": kv_status,
            "cached_tenants": str(len(self.config_store.cached_slugs())),
        }


def create_app():
    """Create FastAPI application."""
    service = TenantRouterService()
    return service.app


if __name__ == "__main__":
    service = TenantRouterService()
    service.run()
