"""Storage backends, schema and tenant-scoped repositories."""
