"""
Feature flag data models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, Field


class Environment(str, Enum):
    """Deployment environments a flag can be scoped to."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    ALL = "all"


@dataclass(frozen=True)
class FeatureFlagDefinition:
    """Feature flag definition. Read-only once loaded."""
    key: str
    name: str = ""
    description: str = ""
    enabled: bool = False
    rollout_percentage: Optional[int] = None
    allowed_tenants: FrozenSet[str] = field(default_factory=frozenset)
    allowed_users: FrozenSet[str] = field(default_factory=frozenset)
    allowed_roles: FrozenSet[str] = field(default_factory=frozenset)
    environment: Environment = Environment.ALL
    expires_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_rollout(self) -> bool:
        """Partially rolled out: a percentage strictly between 0 and 100."""
        return bool(self.rollout_percentage) and self.rollout_percentage < 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "rollout_percentage": self.rollout_percentage,
            "allowed_tenants": sorted(self.allowed_tenants),
            "allowed_users": sorted(self.allowed_users),
            "allowed_roles": sorted(self.allowed_roles),
            "environment": self.environment.value,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class FlagContext:
    """Who a flag is being evaluated for. Every field is optional."""
    user_id: Optional[str] = None
    tenant_id: Optional[str] = None
    role: Optional[str] = None


@dataclass(frozen=True)
class FeatureFlagEvaluation:
    """Evaluation outcome with the gate that decided it."""
    enabled: bool
    reason: str


@dataclass(frozen=True)
class FlagOverride:
    """Locally stored forced value for one flag."""
    enabled: bool
    expires_at: datetime


class FlagContextRequest(BaseModel):
    """Request model for flag evaluation."""
    user_id: Optional[str] = Field(None, description="User ID")
    tenant_id: Optional[str] = Field(None, description="Tenant slug")
    role: Optional[str] = Field(None, description="User role")

    def to_context(self) -> FlagContext:
        return FlagContext(user_id=self.user_id, tenant_id=self.tenant_id, role=self.role)


class FeatureFlagEvaluationResponse(BaseModel):
    """Response model for flag evaluation."""
    flag: str
    enabled: bool
    reason: str
