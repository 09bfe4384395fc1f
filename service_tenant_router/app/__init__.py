"""
Tenant Router service package for the tenant gateway.

The router sits in front of every tenant backend and, per request:

- Identifies the tenant (subdomain, header, path, query)
- Loads and validates the tenant's configuration (TTL cache + registry)
- Enforces the tenant's hourly per-client request budget
- Proxies the request to the tenant backend and meters usage

Structure:
- app.main: FastAPI app, lifecycle, and the catch-all route.
- app.domain: The request handler and its stage machine.
- app.identity: Tenant identification strategies.
- app.tenants: Tenant config models and the config store.
- app.ratelimit: Hourly window limiter.
- app.usage: Daily usage meter.
- app.proxy: Reverse proxy to tenant backends.
- app.adapters: Tenant registry client.
"""
