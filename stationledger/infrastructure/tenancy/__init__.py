"""Tenant registry and per-tenant domain cache."""
