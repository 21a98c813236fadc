from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TimezoneRef(BaseModel):
    value: str
    label: str


class AvailabilityEntry(BaseModel):
    date: str
    time: str
    available: bool
    timestamp: str | None = None


class StoredResponse(BaseModel):
    name: str
    email: str = ""
    password_hash: str | None = None
    availability: list[AvailabilityEntry] = []
    version: int = 0
    created_at: str
    updated_at: str


class StoredEvent(BaseModel):
    """Event document as persisted.

    ``responses`` is keyed by the lower-cased participant name, which makes
    case-insensitive uniqueness structural.
    """

    id: str
    name: str
    selected_dates: list[str]
    start_time: str
    end_time: str
    timezone: TimezoneRef
    time_slots: list[str]
    response_limit: int | None = None
    hide_responses: bool = False
    require_email: bool = False
    responses: dict[str, StoredResponse] = {}
    version: int = 0
    created_at: str
    storage_id: str | None = None

    @property
    def dates(self) -> list[date]:
        return [date.fromisoformat(d) for d in self.selected_dates]

    @property
    def requires_password(self) -> bool:
        return self.response_limit is not None

    @property
    def is_locked_for_new(self) -> bool:
        return self.response_limit is not None and len(self.responses) >= self.response_limit

    def find_response(self, name: str) -> StoredResponse | None:
        return self.responses.get(normalize_name(name))


def normalize_name(name: str) -> str:
    return name.strip().lower()


class CreateEventRequest(BaseModel):
    """Body of ``POST /events``.

    Everything is optional at the type level so that a missing field is
    reported alongside all the others instead of failing on the first.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    name: str | None = None
    selected_dates: list[str] | None = Field(default=None, alias="selectedDates")
    start_time: str | None = Field(default=None, alias="startTime")
    end_time: str | None = Field(default=None, alias="endTime")
    timezone: dict[str, Any] | None = None
    time_slots: list[str] | None = Field(default=None, alias="timeSlots")
    response_limit: int | None = Field(default=None, alias="responseLimit")
    hide_responses: bool = Field(default=False, alias="hideResponses")
    require_email: bool = Field(default=False, alias="requireEmail")


class ResponseIn(BaseModel):
    name: str
    email: str | None = None
    availability: list[AvailabilityEntry] = []
    version: int | None = None


class UpdateEventRequest(BaseModel):
    """Body of ``PUT /events``: the full event document as the client holds it.

    Only the caller's own entry in ``responses`` is applied; the event's
    immutable fields are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    responses: list[ResponseIn] = []


class ResponseOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    email: str = ""
    availability: list[AvailabilityEntry]
    version: int
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")


class EventOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    selected_dates: list[str] = Field(alias="selectedDates")
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    timezone: TimezoneRef
    time_slots: list[str] = Field(alias="timeSlots")
    response_limit: int | None = Field(default=None, alias="responseLimit")
    hide_responses: bool = Field(default=False, alias="hideResponses")
    require_email: bool = Field(default=False, alias="requireEmail")
    responses: list[ResponseOut]
    version: int
    created_at: str = Field(alias="createdAt")
    storage_id: str | None = Field(default=None, alias="storageId")
    summary: str = ""


class SignInRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_id: str | None = Field(default=None, alias="eventId")
    user_name: str | None = Field(default=None, alias="userName")
    password: str | None = None
    is_response_limited: bool | None = Field(default=None, alias="isResponseLimited")


class SignInResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_name: str = Field(alias="userName")
    message: str = "Successfully signed in"


class SessionUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_name: str = Field(alias="userName")
