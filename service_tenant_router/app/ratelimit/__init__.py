"""
Rate limiting package for the Tenant Router.

Hourly request budgets per (tenant, client IP), failing open when the
key/value store is unavailable.
"""
