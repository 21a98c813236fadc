from enum import Enum

from pydantic import BaseModel

from meetgrid.models.events import AvailabilityEntry


class Bucket(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    FULL = "full"


class BestTimesStatus(str, Enum):
    FOUND = "found"
    NO_MAJORITY = "no_majority"
    NO_AVAILABILITY = "no_availability"


class AvailableParticipant(BaseModel):
    name: str
    email: str = ""
    timestamp: str | None = None


class SlotSummary(BaseModel):
    key: str
    label: str
    count: int
    total: int
    ratio: float
    bucket: Bucket
    available: list[AvailableParticipant] = []


class DaySummary(BaseModel):
    date: str
    slots: list[SlotSummary]


class EveryoneView(BaseModel):
    event_id: str
    timezone: str
    total: int
    days: list[DaySummary]


class PersonalView(BaseModel):
    event_id: str
    name: str
    availability: list[AvailabilityEntry]
    selected: dict[str, dict[str, bool]]


class BestTimeRange(BaseModel):
    date: str
    start_time: str
    end_time: str
    start_key: str
    end_key: str
    available: int
    total: int


class BestTimes(BaseModel):
    status: BestTimesStatus
    message: str
    ranges: list[BestTimeRange] = []
