"""
Request orchestration for the tenant router.

Every request walks the same stages::

    PREFLIGHT -> IDENTIFY -> CONFIG_LOAD -> RATE_CHECK -> PROXY -> DECORATE -> RESPOND

and any stage may divert to ERROR_RESPOND. Error responses use the
``{"error", "message"}`` envelope and carry the same CORS headers as
proxied responses.
"""

import time
from enum import Enum
from typing import Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from shared.errors import GatewayException, RateLimitExceeded, TenantNotIdentified
from shared.logging import clear_context, get_logger, set_request_id, set_tenant_context
from ..identity.resolver import IdentityResolver, InboundRequest
from ..proxy.request_proxy import RequestProxy
from ..ratelimit.hourly_window import HourlyRateLimiter
from ..tenants.config_store import ConfigStore
from ..usage.meter import UsageMeter


CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Tenant-ID, apikey",
    "Access-Control-Max-Age": "86400",
}


class Stage(str, Enum):
    """Handler stages, used for logs and error attribution."""
    PREFLIGHT = "preflight"
    IDENTIFY = "identify"
    CONFIG_LOAD = "config_load"
    RATE_CHECK = "rate_check"
    PROXY = "proxy"
    DECORATE = "decorate"
    RESPOND = "respond"
    ERROR_RESPOND = "error_respond"


class InternalError(GatewayException):
    """Unexpected failure inside the handler."""

    def __init__(self):
        super().__init__("INTERNAL_ERROR", "An unexpected error occurred")


def get_client_ip(request: Request) -> str:
    """Extract the caller IP from edge and proxy headers."""
    edge_ip = request.headers.get("CF-Connecting-IP")
    if edge_ip:
        return edge_ip.strip()
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return "unknown"


def _elapsed_ms(started: float) -> str:
    return f"{int(round((time.perf_counter() - started) * 1000))}ms"


class GatewayHandler:
    """Runs one inbound request through identification, policy and proxying."""

    def __init__(
        self,
        resolver: IdentityResolver,
        config_store: ConfigStore,
        rate_limiter: HourlyRateLimiter,
        proxy: RequestProxy,
        usage_meter: UsageMeter,
        *,
        metrics=None,
    ):
        self.resolver = resolver
        self.config_store = config_store
        self.rate_limiter = rate_limiter
        self.proxy = proxy
        self.usage_meter = usage_meter
        self.metrics = metrics
        self.logger = get_logger("router.handler")

    async def handle(self, request: Request) -> Response:
        started = time.perf_counter()
        set_request_id(request.headers.get("X-Request-ID"))
        stage = Stage.PREFLIGHT
        tenant: Optional[str] = None

        try:
            if request.method == "OPTIONS":
                return Response(status_code=204, headers=CORS_HEADERS)

            stage = Stage.IDENTIFY
            identification = self.resolver.resolve(InboundRequest.from_starlette(request))
            if identification is None:
                raise TenantNotIdentified()
            tenant = identification.tenant_slug
            set_tenant_context(tenant)
            self.logger.debug(
                "Tenant identified",
                method=identification.method.value,
                tenant_slug=tenant
            )

            stage = Stage.CONFIG_LOAD
            config = await self.config_store.load(tenant)

            stage = Stage.RATE_CHECK
            decision = await self.rate_limiter.check(
                config.tenant_id,
                get_client_ip(request),
                config.limits.max_api_calls_per_hour,
            )
            decision.raise_for_denied()

            stage = Stage.PROXY
            response = await self.proxy.forward(request, config, self.config_store.backend_for(config))

            stage = Stage.DECORATE
            response.headers.update(CORS_HEADERS)
            response.headers.update(decision.headers())
            response.headers["X-Response-Time"] = _elapsed_ms(started)
            try:
                self.usage_meter.schedule(config.tenant_id)
            except Exception as exc:
                self.logger.warning("Usage metering not scheduled", tenant_id=config.tenant_id, error=str(exc))

            stage = Stage.RESPOND
            self._count(tenant, "proxied")
            return response

        except GatewayException as exc:
            return self._error_response(exc, stage, tenant, started)
        except Exception:
            self.logger.exception("Unhandled error in tenant router", stage=stage.value, tenant_slug=tenant)
            return self._error_response(InternalError(), stage, tenant, started)
        finally:
            clear_context()

    def _error_response(
        self,
        exc: GatewayException,
        stage: Stage,
        tenant: Optional[str],
        started: float,
    ) -> JSONResponse:
        self.logger.warning(
            "Request rejected",
            stage=stage.value,
            next_stage=Stage.ERROR_RESPOND.value,
            code=exc.code,
            status_code=exc.status_code,
            message=exc.message,
            tenant_slug=tenant
        )
        if self.metrics:
            self.metrics.record_error(exc.code)
        self._count(tenant or "unknown", exc.code.lower())

        headers = dict(CORS_HEADERS)
        if isinstance(exc, RateLimitExceeded):
            headers.update(exc.headers())
        headers["X-Response-Time"] = _elapsed_ms(started)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)

    def _count(self, tenant: str, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("tenant_requests_total", tenant=tenant, outcome=outcome)
