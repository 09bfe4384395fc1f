"""
Domain package for the Tenant Router.

Holds the request handler that strings identification, config loading,
rate limiting, proxying and metering together.
"""

from .handler import CORS_HEADERS, GatewayHandler, Stage, get_client_ip

__all__ = ["CORS_HEADERS", "GatewayHandler", "Stage", "get_client_ip"]
