"""Lease core services: versioning, interval records, batch, reports."""
