"""
Shared utilities for the tenant gateway services.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request and tenant correlation
- metrics: Prometheus metrics helpers
- errors: Gateway error types and the ``{"error", "message"}`` envelope
- kv_store: Shared key/value store (redis or in-process)
- base_service: FastAPI service scaffold with health and metrics routes

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
