"""Database layer - engine, base classes, and column types."""

from auction_kernel.db.base import Base, TimestampedBase
from auction_kernel.db.engine import Database
from auction_kernel.db.types import JobId, Money

__all__ = [
    "Base",
    "TimestampedBase",
    "Database",
    "JobId",
    "Money",
]
