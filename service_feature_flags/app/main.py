"""
Feature flags service for the tenant gateway.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import GatewayException

from .flags.catalog import FlagCatalog
from .flags.evaluator import FeatureFlagEvaluator
from .flags.models import (
    Environment,
    FeatureFlagEvaluationResponse,
    FlagContext,
    FlagContextRequest,
)


class FlagNotFound(GatewayException):
    """No flag with the requested key."""

    status_code = 404
    error = "Flag not found"

    def __init__(self, flag_key: str):
        super().__init__("FLAG_NOT_FOUND", f"Unknown feature flag: {flag_key}", {"flag": flag_key})


def resolve_environment(value: str) -> Environment:
    """Map a configured environment name onto a concrete ``Environment``."""
    try:
        environment = Environment(value.lower())
    except ValueError:
        return Environment.PRODUCTION
    return Environment.PRODUCTION if environment is Environment.ALL else environment


class FeatureFlagService(BaseService):
    """Feature flag service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        catalog: Optional[FlagCatalog] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        super().__init__("flags", 8010, config or get_config("flags", 8010))

        self.catalog = catalog or FlagCatalog(self.config.flags_file)
        self.environment = resolve_environment(self.config.env)
        if self.environment.value != self.config.env.lower():
            self.logger.warning(
                "Unknown environment, evaluating flags as production",
                env=self.config.env
            )
        self.evaluator = FeatureFlagEvaluator(
            self.catalog.flags,
            self.environment,
            now=now,
            metrics=self.metrics,
        )

        self._setup_flag_routes()

    def _setup_flag_routes(self):
        """Set up feature flag routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "flags",
                "message": "Tenant Gateway - Feature Flags Service",
                "version": "1.0.0",
                "environment": self.environment.value,
            }

        @self.app.get("/flags")
        async def list_flags():
            """List every flag definition."""
            flags = [flag.to_dict() for flag in self.evaluator.all_flags()]
            return {"flags": flags, "total": len(flags)}

        @self.app.get("/flags/stats")
        async def flag_stats():
            """Catalog counts."""
            return self.evaluator.stats()

        @self.app.get("/flags/enabled")
        async def enabled_flags(
            user_id: Optional[str] = Query(None, description="User ID"),
            tenant_id: Optional[str] = Query(None, description="Tenant slug"),
            role: Optional[str] = Query(None, description="User role"),
        ):
            """Keys of the flags enabled for a context."""
            context = FlagContext(user_id=user_id, tenant_id=tenant_id, role=role)
            return {"flags": self.evaluator.enabled_features(context)}

        @self.app.get("/flags/{flag_key}")
        async def get_flag(flag_key: str):
            """Get one flag definition."""
            flag = self.evaluator.get_flag(flag_key)
            if flag is None:
                raise FlagNotFound(flag_key)
            return flag.to_dict()

        @self.app.post("/flags/{flag_key}/evaluate", response_model=FeatureFlagEvaluationResponse)
        async def evaluate_flag(flag_key: str, request: Optional[FlagContextRequest] = None):
            """Evaluate one flag for a context."""
            context = request.to_context() if request else FlagContext()
            result = self.evaluator.evaluate(flag_key, context)
            self.logger.info(
                "Feature flag usage",
                flag=flag_key,
                user_id=context.user_id,
                tenant_id=context.tenant_id,
                enabled=result.enabled
            )
            return FeatureFlagEvaluationResponse(flag=flag_key, enabled=result.enabled, reason=result.reason)

    async def _check_dependencies(self):
        return {"catalog": "ok" if self.evaluator.flags else "empty"}


def create_app():
    """Create FastAPI application."""
    service = FeatureFlagService()
    return service.app


if __name__ == "__main__":
    service = FeatureFlagService()
    service.run()
