"""
Usage metering package for the Tenant Router.
"""
