"""
Tenant configuration models.
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TenantStatus(str, Enum):
    """Lifecycle status of a tenant."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class SubscriptionStatus(str, Enum):
    """Billing subscription status."""
    TRIAL = "trial"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


INVALID_SUBSCRIPTIONS = frozenset({SubscriptionStatus.SUSPENDED, SubscriptionStatus.EXPIRED})


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


class TenantLimits(BaseModel):
    """Per-tenant quotas."""

    model_config = ConfigDict(frozen=True)

    max_users: int = 100
    max_storage_gb: int = 50
    max_api_calls_per_hour: int = 10000


class TenantConfig(BaseModel):
    """Validated tenant configuration.

    Instances are frozen: callers that need fresher data go back to the
    ConfigStore.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    slug: str
    display_name: str
    name: str = ""
    status: TenantStatus
    subscription_status: SubscriptionStatus
    payment_status: Optional[str] = None
    enabled_features: FrozenSet[str] = Field(default_factory=frozenset)
    limits: TenantLimits = Field(default_factory=TenantLimits)
    backend_url: str
    backend_credential: str = Field(default="", repr=False)
    region: str = ""
    branding: Mapping[str, Any] = Field(default_factory=lambda: MappingProxyType({}))

    @field_validator("branding", mode="after")
    @classmethod
    def _read_only_branding(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze(value)

    @classmethod
    def from_registry_row(cls, row: Dict[str, Any], *, default_max_api_calls_per_hour: int = 10000) -> "TenantConfig":
        """Map a registry ``tenants`` row onto the config model.

        Rows carry either the backend-neutral column names or the
        ``supabase_*`` ones. ``status`` and ``subscription_status`` are
        required; a row without them raises KeyError.
        """
        slug = row["slug"]
        name = row.get("name") or slug
        return cls(
            tenant_id=str(row.get("id") or slug),
            slug=slug,
            name=name,
            display_name=row.get("display_name") or name,
            status=row["status"],
            subscription_status=row["subscription_status"],
            payment_status=row.get("payment_status"),
            enabled_features=frozenset(row.get("enabled_features") or ()),
            limits=TenantLimits(
                max_users=row.get("max_users") or 100,
                max_storage_gb=row.get("max_storage_gb") or 50,
                max_api_calls_per_hour=row.get("max_api_calls_per_hour") or default_max_api_calls_per_hour,
            ),
            backend_url=row.get("backend_url") or row["supabase_url"],
            backend_credential=row.get("backend_credential") or row.get("supabase_anon_key") or "",
            region=row.get("region") or row.get("supabase_region") or "",
            branding=row.get("branding") or {},
        )

    def has_feature(self, feature: str) -> bool:
        return feature in self.enabled_features

    def within_limit(self, kind: str, current: float) -> bool:
        """Whether ``current`` usage of ``users``, ``storage`` or ``api`` is under the quota."""
        limits = {
            "users": self.limits.max_users,
            "storage": self.limits.max_storage_gb,
            "api": self.limits.max_api_calls_per_hour,
        }
        if kind not in limits:
            raise ValueError(f"unknown limit kind: {kind}")
        return current < limits[kind]

    def redacted(self) -> Dict[str, Any]:
        """Loggable view without the backend credential."""
        data = self.model_dump(mode="json", exclude={"backend_credential", "branding"})
        data["branding"] = _thaw(self.branding)
        data["backend_credential"] = "***REDACTED***"
        return data
