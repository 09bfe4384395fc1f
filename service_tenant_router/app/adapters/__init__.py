"""
Adapters package for the Tenant Router.

Wraps the tenant registry's REST interface. Registry failures on the
config path surface as ``ConfigStoreTransientError``; usage writes raise
plain ``httpx`` errors for the meter to swallow.
"""

from .registry_client import TenantRegistryClient

__all__ = ["TenantRegistryClient"]
