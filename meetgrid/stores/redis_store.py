import logging

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from meetgrid.errors import ConflictError, NotFoundError, PersistenceError
from meetgrid.models.events import StoredEvent
from meetgrid.stores.base import EventStore, Mutation

logger = logging.getLogger("meetgrid.store.redis")


class RedisEventStore(EventStore):
    """One JSON document per event under ``<prefix>:event:<id>``.

    Updates use WATCH/MULTI: if another writer touches the key between the
    read and the EXEC, the transaction is re-run against the fresh document.
    """

    def __init__(self, client: redis.Redis, prefix: str = "meetgrid", max_attempts: int = 5) -> None:
        self._client = client
        self._prefix = prefix
        self._max_attempts = max_attempts

    def _key(self, event_id: str) -> str:
        return f"{self._prefix}:event:{event_id}"

    async def create(self, event: StoredEvent) -> StoredEvent:
        try:
            seq = await self._client.incr(f"{self._prefix}:event_seq")
            event.storage_id = str(seq)
            created = await self._client.set(self._key(event.id), event.model_dump_json(), nx=True)
        except RedisError as e:
            logger.exception("Failed to create event id=%s", event.id)
            raise PersistenceError() from e
        if not created:
            raise ConflictError(detail="An event with this id already exists", event_id=event.id)
        return event

    async def get(self, event_id: str) -> StoredEvent | None:
        try:
            raw = await self._client.get(self._key(event_id))
        except RedisError as e:
            logger.exception("Failed to load event id=%s", event_id)
            raise PersistenceError(detail="Failed to load event") from e
        if raw is None:
            return None
        return StoredEvent.model_validate_json(raw)

    async def update(self, event_id: str, mutate: Mutation) -> StoredEvent:
        key = self._key(event_id)
        try:
            for attempt in range(1, self._max_attempts + 1):
                async with self._client.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            raise NotFoundError(detail="Event not found", event_id=event_id)
                        event = StoredEvent.model_validate_json(raw)
                        mutate(event)
                        event.version += 1
                        pipe.multi()
                        pipe.set(key, event.model_dump_json())
                        await pipe.execute()
                        return event
                    except WatchError:
                        logger.debug("concurrent write on event=%s attempt=%d", event_id, attempt)
        except RedisError as e:
            logger.exception("Failed to update event id=%s", event_id)
            raise PersistenceError() from e
        logger.warning("gave up updating event=%s after %d attempts", event_id, self._max_attempts)
        raise PersistenceError(detail="Event is busy, please try again")

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False
