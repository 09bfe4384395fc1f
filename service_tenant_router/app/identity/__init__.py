"""
Tenant identification package.

Pure parsing over the inbound request; never touches the network or a
store.
"""

from .resolver import (
    DeploymentSurface,
    IdentificationMethod,
    IdentityResolver,
    InboundRequest,
    InMemorySessionStore,
    TenantIdentification,
    generate_tenant_slug,
    is_valid_tenant_slug,
)

__all__ = [
    "DeploymentSurface",
    "IdentificationMethod",
    "IdentityResolver",
    "InboundRequest",
    "InMemorySessionStore",
    "TenantIdentification",
    "generate_tenant_slug",
    "is_valid_tenant_slug",
]
