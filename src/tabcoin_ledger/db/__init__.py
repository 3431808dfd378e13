"""Database access: pooling, retries, and statement execution."""

from .executor import Database, ErrorCodes, create_database
from .pool import ConnectionCache, ConnectionManager, PoolTelemetry
from .retry import RetryPolicy

__all__ = [
    "ConnectionCache",
    "ConnectionManager",
    "Database",
    "ErrorCodes",
    "PoolTelemetry",
    "RetryPolicy",
    "create_database",
]
