"""Async HTTP client for the events API.

Session cookies set by sign-in are kept in the underlying ``httpx`` cookie
jar, so one client instance acts as one browser profile.
"""

import logging
from typing import Any

import httpx

from meetgrid.errors import (
    APIError,
    AuthError,
    ConflictError,
    LockedError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from meetgrid.models.events import AvailabilityEntry, normalize_name

logger = logging.getLogger("meetgrid.client")

_STATUS_ERRORS: dict[int, type[APIError]] = {
    400: ValidationError,
    401: AuthError,
    403: LockedError,
    404: NotFoundError,
    409: ConflictError,
}


class EventsClient:
    def __init__(
        self,
        base_url: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "EventsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._client.request(method, path, **kwargs)
        if response.is_success:
            return response.json()
        try:
            body = response.json()
        except ValueError:
            body = {}
        error_cls = _STATUS_ERRORS.get(response.status_code, PersistenceError)
        logger.warning("%s %s failed status=%d", method, path, response.status_code)
        raise error_cls(detail=body.get("detail"), **(body.get("context") or {}))

    async def create_event(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/events", json=payload)

    async def get_event(self, event_id: str) -> dict[str, Any]:
        return await self._request("GET", "/events", params={"id": event_id})

    async def sign_in(
        self,
        event_id: str,
        user_name: str,
        password: str | None = None,
        is_response_limited: bool = False,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/events/users",
            json={
                "eventId": event_id,
                "userName": user_name,
                "password": password,
                "isResponseLimited": is_response_limited,
            },
        )

    async def current_user(self, event_id: str) -> dict[str, Any]:
        return await self._request("GET", "/events/users", params={"eventId": event_id})

    async def sign_out(self, event_id: str) -> dict[str, Any]:
        return await self._request("POST", "/events/users/signout", params={"eventId": event_id})

    async def save_availability(
        self,
        event_id: str,
        identity: str,
        entries: list[AvailabilityEntry],
        email: str | None = None,
        version: int | None = None,
    ) -> dict[str, Any]:
        body = {
            "id": event_id,
            "responses": [
                {
                    "name": identity,
                    "email": email,
                    "availability": [e.model_dump() for e in entries],
                    "version": version,
                }
            ],
        }
        return await self._request("PUT", "/events", json=body)


class AvailabilityWriter:
    """Save callback for :class:`~meetgrid.autosave.AutosaveCoordinator`.

    Remembers the response version returned by each save and sends it with
    the next one, so a write from a stale tab is refused with a conflict.
    """

    def __init__(
        self,
        client: EventsClient,
        event_id: str,
        identity: str,
        version: int | None = None,
        email: str | None = None,
    ) -> None:
        self.client = client
        self.event_id = event_id
        self.identity = identity
        self.version = version
        self.email = email

    async def __call__(self, entries: list[AvailabilityEntry]) -> dict[str, Any]:
        doc = await self.client.save_availability(
            self.event_id, self.identity, entries, email=self.email, version=self.version
        )
        for response in doc.get("responses", []):
            if normalize_name(response["name"]) == normalize_name(self.identity):
                self.version = response["version"]
        return doc
