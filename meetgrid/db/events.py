import logging
from datetime import UTC, datetime

import psycopg
from psycopg import errors as pg_errors
from psycopg.types.json import Json

from meetgrid.db.core import _get_connection
from meetgrid.errors import ConflictError, NotFoundError, PersistenceError
from meetgrid.models.events import StoredEvent
from meetgrid.stores.base import EventStore, Mutation

logger = logging.getLogger("meetgrid.store.postgres")


def _document(event: StoredEvent) -> Json:
    return Json(event.model_dump(mode="json", exclude={"storage_id"}))


def _from_row(row_id: int, document: dict) -> StoredEvent:
    event = StoredEvent.model_validate(document)
    event.storage_id = str(row_id)
    return event


class PostgresEventStore(EventStore):
    """Events in ``meetgrid_events``: one JSONB document per row.

    Updates lock the row with ``SELECT ... FOR UPDATE`` inside a
    transaction, so concurrent writers to one event are serialized.
    """

    async def create(self, event: StoredEvent) -> StoredEvent:
        now = datetime.now(UTC)
        try:
            async with _get_connection() as conn:
                cur = await conn.execute(
                    """INSERT INTO meetgrid_events (id, document, version, created_at, updated_at)
                       VALUES (%s, %s, %s, %s, %s)
                       RETURNING row_id""",
                    (event.id, _document(event), event.version, now, now),
                )
                row = await cur.fetchone()
        except pg_errors.UniqueViolation as e:
            raise ConflictError(detail="An event with this id already exists", event_id=event.id) from e
        except psycopg.Error as e:
            logger.exception("Failed to create event id=%s", event.id)
            raise PersistenceError() from e
        event.storage_id = str(row[0])
        return event

    async def get(self, event_id: str) -> StoredEvent | None:
        try:
            async with _get_connection() as conn:
                cur = await conn.execute(
                    "SELECT row_id, document FROM meetgrid_events WHERE id = %s",
                    (event_id,),
                )
                row = await cur.fetchone()
        except psycopg.Error as e:
            logger.exception("Failed to load event id=%s", event_id)
            raise PersistenceError(detail="Failed to load event") from e
        if not row:
            return None
        return _from_row(row[0], row[1])

    async def update(self, event_id: str, mutate: Mutation) -> StoredEvent:
        try:
            async with _get_connection(autocommit=False) as conn:
                async with conn.transaction():
                    cur = await conn.execute(
                        "SELECT row_id, document FROM meetgrid_events WHERE id = %s FOR UPDATE",
                        (event_id,),
                    )
                    row = await cur.fetchone()
                    if not row:
                        raise NotFoundError(detail="Event not found", event_id=event_id)
                    event = _from_row(row[0], row[1])
                    mutate(event)
                    event.version += 1
                    await conn.execute(
                        "UPDATE meetgrid_events SET document = %s, version = %s, updated_at = %s WHERE id = %s",
                        (_document(event), event.version, datetime.now(UTC), event_id),
                    )
        except psycopg.Error as e:
            logger.exception("Failed to update event id=%s", event_id)
            raise PersistenceError() from e
        return event

    async def ping(self) -> bool:
        try:
            async with _get_connection() as conn:
                await conn.execute("SELECT 1")
            return True
        except psycopg.Error:
            return False
