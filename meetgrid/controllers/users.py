import logging
from typing import Any

from fastapi import APIRouter, Query, Request, Response

from meetgrid import access
from meetgrid.config import get_settings
from meetgrid.dependencies import Store, Tokens, read_credential
from meetgrid.errors import ValidationError
from meetgrid.models.events import SessionUser, SignInRequest, SignInResponse

logger = logging.getLogger("meetgrid.controllers.users")
router = APIRouter()


@router.post("/events/users")
async def sign_in(
    response: Response,
    store: Store,
    tokens: Tokens,
    req: SignInRequest | None = None,
) -> dict[str, Any]:
    req = req or SignInRequest()
    settings = get_settings().session
    # isResponseLimited from the client is advisory; the stored event decides.
    session, token = await access.sign_in(
        store,
        tokens,
        req.event_id,
        req.user_name,
        req.password,
        password_iterations=settings.password_iterations,
    )
    response.set_cookie(
        access.cookie_name(session.event_id, settings.cookie_prefix),
        token,
        max_age=settings.ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
    )
    logger.info("Signed in event=%s", session.event_id)
    return SignInResponse(user_name=session.identity).model_dump(by_alias=True)


@router.get("/events/users")
async def current_user(
    request: Request,
    tokens: Tokens,
    event_id: str | None = Query(default=None, alias="eventId"),
) -> dict[str, Any]:
    if not event_id:
        raise ValidationError.for_fields(["eventId"], detail="Event ID is required")
    identity = access.verify_session(tokens, event_id, read_credential(request, event_id))
    return SessionUser(user_name=identity).model_dump(by_alias=True)


@router.post("/events/users/signout")
async def sign_out(
    response: Response,
    event_id: str | None = Query(default=None, alias="eventId"),
) -> dict[str, str]:
    settings = get_settings().session
    name = access.sign_out(event_id, settings.cookie_prefix)
    response.delete_cookie(
        name,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
    )
    return {"message": "Successfully signed out"}
