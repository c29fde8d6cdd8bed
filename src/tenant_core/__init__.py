"""Tenant isolation, access control, quotas and audit for a multi-tenant backend."""
