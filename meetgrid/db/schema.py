"""Database schema management.

``ensure_schema`` is idempotent and runs at pool start-up.
"""

import logging

from meetgrid.db.core import _get_connection

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS meetgrid_events (
    row_id BIGSERIAL PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    document JSONB NOT NULL,
    version INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
"""


async def ensure_schema() -> None:
    async with _get_connection() as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("meetgrid_events schema ensured")
