import logging
from typing import Dict

from fastapi import APIRouter

from meetgrid import state
from meetgrid.config import get_settings

logger = logging.getLogger("meetgrid.controllers.health")
router = APIRouter()


@router.get("/health")
async def health() -> Dict[str, str]:
    store_status = "disconnected"
    if state.event_store:
        try:
            store_status = "healthy" if await state.event_store.ping() else "unhealthy"
        except Exception:
            logger.warning("Event store ping failed", exc_info=True)
            store_status = "unhealthy"

    return {"status": "ok", "backend": get_settings().storage.backend, "store": store_status}
