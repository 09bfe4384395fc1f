"""
Mock tenant registry exposing the REST endpoints the tenant router calls.
"""

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from shared.logging import get_logger


def _default_tenants() -> List[Dict[str, Any]]:
    tenants = []
    for slug, name, region in (
        ("kerala", "Kerala Campaign 2026", "ap-south-1"),
        ("tamilnadu", "Tamil Nadu Campaign 2026", "ap-south-1"),
        ("westbengal", "West Bengal Campaign 2026", "ap-south-2"),
    ):
        tenants.append({
            "id": f"tenant-{slug}",
            "slug": slug,
            "name": name,
            "display_name": name.replace(" 2026", ""),
            "status": "active",
            "subscription_status": "active",
            "payment_status": "paid",
            "enabled_features": ["analytics", "surveys", "field_reports"],
            "max_users": 100,
            "max_storage_gb": 50,
            "max_api_calls_per_hour": 10000,
            "supabase_url": f"http://localhost:9000/{slug}",
            "supabase_anon_key": f"mock-anon-key-{slug}",
            "supabase_region": region,
            "branding": {},
        })
    return tenants


class MockRegistryServer:
    """Mock tenant registry implementation.

    ``fail_requests`` makes the next N tenant lookups answer 503.
    """

    def __init__(
        self,
        port: int = 54321,
        *,
        api_key: Optional[str] = None,
        tenants: Optional[List[Dict[str, Any]]] = None,
    ):
        self.port = port
        self.api_key = api_key
        self.logger = get_logger("mock.registry")
        self.app = FastAPI(title="Mock Tenant Registry", version="1.0.0")

        self.tenants: List[Dict[str, Any]] = list(tenants) if tenants is not None else _default_tenants()
        self.usage: List[Dict[str, Any]] = []
        self.lookups = 0
        self.fail_requests = 0

        self._setup_routes()

    def _check_key(self, apikey: Optional[str]) -> None:
        if self.api_key is not None and apikey != self.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Dict[str, str]) -> bool:
        for column, expression in filters.items():
            operator, _, expected = expression.partition(".")
            if operator != "eq":
                raise HTTPException(status_code=400, detail=f"Unsupported operator: {operator}")
            if str(row.get(column)) != expected:
                return False
        return True

    def _setup_routes(self):
        """Set up mock registry routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "mock-registry",
                "message": "Mock tenant registry for the tenant gateway",
                "version": "1.0.0",
                "tenants": len(self.tenants)
            }

        @self.app.get("/rest/v1/tenants")
        async def list_tenants(request: Request, apikey: Optional[str] = Header(None)):
            """Tenant rows filtered with ``column=eq.value`` parameters."""
            self._check_key(apikey)
            self.lookups += 1

            if self.fail_requests > 0:
                self.fail_requests -= 1
                return JSONResponse(status_code=503, content={"message": "registry unavailable"})

            filters = {key: value for key, value in request.query_params.items() if key != "select"}
            rows = [row for row in self.tenants if self._matches(row, filters)]
            self.logger.info("Tenant lookup", filters=filters, matches=len(rows))
            return rows

        @self.app.post("/rest/v1/tenant_usage", status_code=201)
        async def record_usage(request: Request, apikey: Optional[str] = Header(None)):
            """Append one usage snapshot."""
            self._check_key(apikey)
            payload = await request.json()
            missing = {"tenant_id", "date", "api_calls"} - set(payload)
            if missing:
                raise HTTPException(status_code=400, detail=f"Missing fields: {sorted(missing)}")
            self.usage.append(payload)
            return payload


def create_app():
    """Create mock registry application."""
    server = MockRegistryServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=54321)
