"""Versioned operations and sequences with JSON reports, retries and idempotent re-runs."""

__all__ = ["execute", "hashing", "operation", "report", "sequence", "validation"]