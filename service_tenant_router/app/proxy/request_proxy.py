"""
Forwards tenant requests to the tenant's backend.
"""

from typing import Iterable, Optional, Tuple

import httpx
from fastapi import Request, Response

from shared.logging import get_logger
from shared.errors import UpstreamUnavailable
from ..tenants.config_store import TenantBackend
from ..tenants.models import TenantConfig


# Recomputed by the transport on the way out.
REQUEST_HEADERS_DROPPED = frozenset({"host", "content-length", "connection", "transfer-encoding"})
# httpx hands back a decoded, fully buffered body.
RESPONSE_HEADERS_DROPPED = frozenset({"content-encoding", "content-length", "transfer-encoding", "connection"})


def strip_tenant_prefix(path: str, slug: str) -> str:
    """Remove a leading ``/{slug}`` segment; ``/kerala/voters`` -> ``/voters``."""
    prefix = f"/{slug}"
    if path == prefix:
        return "/"
    if path.startswith(prefix + "/"):
        return path[len(prefix):]
    return path or "/"


def build_target_url(backend: TenantBackend, path: str, query: str) -> str:
    url = f"{backend.base_url}{strip_tenant_prefix(path, backend.slug)}"
    if query:
        url = f"{url}?{query}"
    return url


def forward_headers(headers: Iterable[Tuple[str, str]], backend: TenantBackend) -> httpx.Headers:
    """Copy inbound headers for the backend and inject tenant credentials."""
    outbound = httpx.Headers(
        [(key, value) for key, value in headers if key.lower() not in REQUEST_HEADERS_DROPPED]
    )
    for key, value in backend.headers.items():
        outbound[key] = value
    return outbound


class RequestProxy:
    """Transparent reverse proxy to tenant backends.

    Backend status codes and bodies pass through untouched. Transport
    failures become ``UpstreamUnavailable``.
    """

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        metrics=None,
    ):
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=False)
        self.metrics = metrics
        self.logger = get_logger("router.proxy")

    async def forward(
        self,
        request: Request,
        config: TenantConfig,
        backend: Optional[TenantBackend] = None,
    ) -> Response:
        backend = backend or TenantBackend.from_config(config)
        target_url = build_target_url(backend, request.url.path, request.url.query)
        headers = forward_headers(request.headers.items(), backend)
        body = await request.body()

        try:
            upstream = await self._client.request(
                request.method,
                target_url,
                headers=headers,
                content=body or None,
            )
        except httpx.HTTPError as exc:
            self.logger.error(
                "Upstream request failed",
                tenant_id=config.slug,
                method=request.method,
                error=str(exc)
            )
            if self.metrics:
                self.metrics.increment_counter("upstream_errors_total", tenant=config.slug)
            raise UpstreamUnavailable(
                f"Tenant backend is unreachable: {exc.__class__.__name__}",
                details={"tenant": config.slug}
            ) from exc

        self.logger.debug(
            "Upstream responded",
            tenant_id=config.slug,
            method=request.method,
            status_code=upstream.status_code
        )
        return self._clone_response(upstream, config)

    def _clone_response(self, upstream: httpx.Response, config: TenantConfig) -> Response:
        response = Response(content=upstream.content, status_code=upstream.status_code)
        for key, value in upstream.headers.multi_items():
            if key.lower() not in RESPONSE_HEADERS_DROPPED:
                response.headers.append(key, value)
        response.headers["X-Tenant-ID"] = config.slug
        response.headers["X-Tenant-Region"] = config.region
        return response

    async def close(self) -> None:
        await self._client.aclose()
