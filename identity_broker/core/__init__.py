"""Core broker logic: IdP adapter, error normalization, tracing and services."""
