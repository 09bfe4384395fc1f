"""
Tenant registry client for the tenant router.
"""

from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger
from shared.errors import ConfigStoreTransientError


class TenantRegistryClient:
    """Client for the tenant registry's REST interface."""

    def __init__(
        self,
        registry_url: str,
        registry_key: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url = registry_url.rstrip('/')
        self._registry_key = registry_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.logger = get_logger("router.registry_client")

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self._registry_key,
            "Authorization": f"Bearer {self._registry_key}",
        }

    async def fetch_tenant(self, slug: str) -> Optional[Dict[str, Any]]:
        """Fetch the active tenant row for ``slug``; None when the registry has none."""
        url = f"{self.base_url}/rest/v1/tenants"
        params = {"slug": f"eq.{slug}", "status": "eq.active"}

        try:
            response = await self._client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            self.logger.error("Tenant registry unreachable", slug=slug, error=str(exc))
            raise ConfigStoreTransientError(
                f"Tenant registry unreachable: {exc.__class__.__name__}",
                details={"slug": slug}
            ) from exc

        if not response.is_success:
            self.logger.error(
                "Tenant registry request failed",
                slug=slug,
                status_code=response.status_code
            )
            raise ConfigStoreTransientError(
                f"Failed to fetch tenant: {response.reason_phrase or response.status_code}",
                details={"slug": slug, "status_code": response.status_code}
            )

        try:
            rows = response.json()
        except ValueError as exc:
            raise ConfigStoreTransientError(
                "Tenant registry returned invalid JSON",
                details={"slug": slug}
            ) from exc

        if not isinstance(rows, list):
            raise ConfigStoreTransientError(
                "Tenant registry returned an unexpected payload",
                details={"slug": slug}
            )

        if not rows:
            self.logger.info("Tenant not in registry", slug=slug)
            return None

        self.logger.debug("Tenant row retrieved", slug=slug)
        return rows[0]

    async def record_usage(self, tenant_id: str, date: str, api_calls: int) -> None:
        """Write one usage snapshot to ``tenant_usage``."""
        response = await self._client.post(
            f"{self.base_url}/rest/v1/tenant_usage",
            json={"tenant_id": tenant_id, "date": date, "api_calls": api_calls},
            headers=self._headers(),
        )
        response.raise_for_status()

    async def close(self) -> None:
        await self._client.aclose()
