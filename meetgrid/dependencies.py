"""Dependency injection for FastAPI endpoints.

Controllers receive the event store and the session signer through these
dependencies instead of reaching into global state.

Usage in controllers:
    from meetgrid.dependencies import Store, Tokens, Viewer

    @router.get("/example")
    async def example(store: Store, tokens: Tokens, viewer: Viewer):
        ...
"""

from typing import Annotated

from fastapi import Depends, Query, Request

from meetgrid import state
from meetgrid.access import Session, SessionTokens, cookie_name, resolve_session
from meetgrid.config import get_settings
from meetgrid.errors import ServiceUnavailableError
from meetgrid.stores.base import EventStore


def get_event_store() -> EventStore:
    """Get the event store.

    Raises:
        ServiceUnavailableError: If the store is not initialized.
    """
    if state.event_store is None:
        raise ServiceUnavailableError(detail="Event store not initialized")
    return state.event_store


def get_session_tokens() -> SessionTokens:
    """Get the session credential signer.

    Raises:
        ServiceUnavailableError: If sessions are not initialized.
    """
    if state.session_tokens is None:
        raise ServiceUnavailableError(detail="Sessions not initialized")
    return state.session_tokens


def read_credential(request: Request, event_id: str) -> str | None:
    """Session credential for ``event_id`` from its cookie or a Bearer header."""
    prefix = get_settings().session.cookie_prefix
    token = request.cookies.get(cookie_name(event_id, prefix))
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


Store = Annotated[EventStore, Depends(get_event_store)]
Tokens = Annotated[SessionTokens, Depends(get_session_tokens)]


def get_viewer(
    request: Request,
    tokens: Tokens,
    event_id: str | None = Query(default=None, alias="id"),
) -> Session:
    """Session of the caller for the event named by the ``id`` query parameter.

    Never raises for a missing or bad credential; the session is simply
    signed out.
    """
    if not event_id:
        return Session(event_id="")
    return resolve_session(tokens, event_id, read_credential(request, event_id))


Viewer = Annotated[Session, Depends(get_viewer)]
