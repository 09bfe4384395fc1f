"""
Tenant configuration package.

Models for validated tenant records and the TTL-caching store that owns
them.
"""

from .models import SubscriptionStatus, TenantConfig, TenantLimits, TenantStatus
from .config_store import ConfigStore, TenantBackend

__all__ = [
    "ConfigStore",
    "SubscriptionStatus",
    "TenantBackend",
    "TenantConfig",
    "TenantLimits",
    "TenantStatus",
]
