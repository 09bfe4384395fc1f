"""
Reverse proxy package for the Tenant Router.
"""
