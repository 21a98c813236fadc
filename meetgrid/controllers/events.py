import logging
from typing import Any, Literal

from fastapi import APIRouter, Query, Request

from meetgrid import aggregation
from meetgrid import events as event_service
from meetgrid.access import verify_session
from meetgrid.dependencies import Store, Tokens, Viewer, read_credential
from meetgrid.errors import AuthError, ValidationError
from meetgrid.models.events import CreateEventRequest, UpdateEventRequest, normalize_name
from meetgrid.timegrid import get_zone

logger = logging.getLogger("meetgrid.controllers.events")
router = APIRouter()


def _dump(event) -> dict[str, Any]:
    return event.model_dump(by_alias=True, mode="json")


@router.post("/events")
async def create_event(
    store: Store,
    tokens: Tokens,
    req: CreateEventRequest | None = None,
) -> dict[str, Any]:
    req = req or CreateEventRequest()
    logger.info("POST /events id=%s", req.id)
    event = await event_service.create_event(store, req)
    return _dump(event_service.to_public(event, tokens))


@router.get("/events")
async def get_event(
    store: Store,
    tokens: Tokens,
    viewer: Viewer,
    id: str | None = Query(default=None),
) -> dict[str, Any]:
    event = await event_service.fetch_event(store, tokens, id, viewer.identity)
    return _dump(event)


@router.put("/events")
async def update_event(request: Request, req: UpdateEventRequest, store: Store, tokens: Tokens) -> dict[str, Any]:
    """Upsert the caller's own response; every other part of the body is ignored."""
    if not req.id:
        raise ValidationError.for_fields(["id"], detail="Event ID is required")
    identity = verify_session(tokens, req.id, read_credential(request, req.id))
    own = [r for r in req.responses if normalize_name(r.name) == normalize_name(identity)]
    if not own:
        logger.info("PUT /events id=%s carried no response for the caller", req.id)
        event = await event_service.load_event(store, req.id)
    else:
        response = own[-1]
        event = await event_service.upsert_response(
            store,
            req.id,
            identity,
            response.availability,
            email=response.email,
            base_version=response.version,
        )
    return _dump(event_service.to_public(event, tokens, identity))


@router.get("/events/views")
async def get_views(
    store: Store,
    tokens: Tokens,
    viewer: Viewer,
    id: str | None = Query(default=None),
    view: Literal["everyone", "personal"] = Query(default="everyone"),
    tz: str | None = Query(default=None),
    users: str | None = Query(default=None),
) -> dict[str, Any]:
    """Consensus views computed from the stored responses.

    ``tz`` re-labels slots for the viewer; ``users`` is a comma-separated
    subset of names for the everyone view.
    """
    if tz:
        try:
            get_zone(tz)
        except ValueError as e:
            raise ValidationError.for_fields(["tz"], detail=f"Unknown timezone: {tz}") from e
    event = await event_service.load_event(store, id)
    visible = event_service.redact(event, tokens, viewer.identity)

    body: dict[str, Any] = {
        "view": view,
        "best_times": aggregation.best_times(visible, tz).model_dump(mode="json"),
    }
    if view == "personal":
        if not viewer.is_authenticated:
            raise AuthError(detail="Not authenticated")
        body["personal"] = aggregation.personal_view(event, viewer.identity).model_dump(mode="json")
    else:
        selected = [u for u in (users or "").split(",") if u.strip()]
        body["everyone"] = aggregation.everyone_view(visible, tz, selected).model_dump(mode="json")
    return body
