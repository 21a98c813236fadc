"""Application startup and shutdown.

Builds the configured event store (redis or postgres) and the session
signer, and publishes them through ``meetgrid.state``.
"""

import logging
from dataclasses import dataclass

import redis.asyncio as redis
from redis.asyncio import BlockingConnectionPool as RedisConnectionPool

from meetgrid import state
from meetgrid.access import SessionTokens
from meetgrid.config import DEFAULT_SESSION_SECRET, get_settings
from meetgrid.db import core as db
from meetgrid.db.events import PostgresEventStore
from meetgrid.stores.base import EventStore
from meetgrid.stores.redis_store import RedisEventStore

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    redis_client: redis.Redis | None = None
    event_store: EventStore | None = None
    session_tokens: SessionTokens | None = None
    db_enabled: bool = False


async def init_redis() -> redis.Redis:
    """Initialize Redis connection with connection pool."""
    settings = get_settings()

    redis_pool = RedisConnectionPool(
        host=settings.redis.host,
        port=settings.redis.port,
        db=settings.redis.db,
        password=settings.redis.password if settings.redis.password else None,
        max_connections=settings.redis.max_connections,
        timeout=settings.redis.pool_timeout_sec,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=True,
    )

    candidate_client = redis.Redis(connection_pool=redis_pool, decode_responses=True)
    if hasattr(candidate_client, "__await__"):
        return await candidate_client
    return candidate_client


def init_session_tokens() -> SessionTokens:
    settings = get_settings().session
    if settings.secret == DEFAULT_SESSION_SECRET:
        logger.warning("SESSION_SECRET is not set; using the insecure default signing key")
    return SessionTokens(settings.secret, ttl_seconds=settings.ttl_seconds)


async def setup_resources() -> LifespanResources:
    """Set up the event store and session signer."""
    settings = get_settings()
    resources = LifespanResources(session_tokens=init_session_tokens())

    if settings.storage.backend == "postgres":
        await db.init_pool()
        resources.db_enabled = True
        resources.event_store = PostgresEventStore()
    else:
        resources.redis_client = await init_redis()
        resources.event_store = RedisEventStore(
            resources.redis_client,
            prefix=settings.redis.key_prefix,
            max_attempts=settings.storage.max_update_attempts,
        )
    logger.info("Event store ready backend=%s", settings.storage.backend)

    state.event_store = resources.event_store
    state.session_tokens = resources.session_tokens
    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Clean up all resources on shutdown."""
    if resources.db_enabled:
        await db.close_pool()

    if resources.redis_client:
        aclose = getattr(resources.redis_client, "aclose", None)
        if callable(aclose):
            await aclose()
        else:
            close = getattr(resources.redis_client, "close", None)
            if callable(close):
                await close()

    state.event_store = None
    state.session_tokens = None
