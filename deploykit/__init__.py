"""Address books, failover chain clients and idempotent deployment operations."""

__version__ = "0.1.0"
__all__ = ["deployment", "operations"]