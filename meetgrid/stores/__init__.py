"""Event persistence backends.

This package provides the store interface and its Redis implementation; the
PostgreSQL store lives with the rest of the database code in ``meetgrid.db``.
"""

from meetgrid.stores.base import EventStore, Mutation
from meetgrid.stores.redis_store import RedisEventStore

__all__ = [
    "EventStore",
    "Mutation",
    "RedisEventStore",
]
