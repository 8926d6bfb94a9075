"""
Pydantic schemas for event-related request/response validation.

State actions are closed enums: anything outside the set is rejected at the
boundary instead of being silently ignored.
"""

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from eventhub.db.base import as_utc
from eventhub.models.event import EventState
from eventhub.schemas.category import CategoryResponse
from eventhub.schemas.user import UserShort


class UserStateAction(str, enum.Enum):
    SEND_TO_REVIEW = "SEND_TO_REVIEW"
    CANCEL_REVIEW = "CANCEL_REVIEW"


class AdminStateAction(str, enum.Enum):
    PUBLISH_EVENT = "PUBLISH_EVENT"
    REJECT_EVENT = "REJECT_EVENT"


class EventSort(str, enum.Enum):
    EVENT_DATE = "EVENT_DATE"
    VIEWS = "VIEWS"


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class _EventDateMixin(BaseModel):
    @field_validator("event_date", check_fields=False)
    @classmethod
    def _event_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class EventCreate(_EventDateMixin):
    title: str = Field(..., min_length=3, max_length=120)
    annotation: str = Field(..., min_length=20, max_length=2000)
    description: str = Field(..., min_length=20, max_length=7000)
    category: int
    event_date: datetime
    location: Location
    paid: bool = False
    participant_limit: int = Field(0, ge=0)
    request_moderation: bool = True


class EventUpdate(_EventDateMixin):
    """Fields shared by owner and admin patches; unset fields are left alone."""

    title: Optional[str] = Field(None, min_length=3, max_length=120)
    annotation: Optional[str] = Field(None, min_length=20, max_length=2000)
    description: Optional[str] = Field(None, min_length=20, max_length=7000)
    category: Optional[int] = None
    event_date: Optional[datetime] = None
    location: Optional[Location] = None
    paid: Optional[bool] = None
    participant_limit: Optional[int] = None
    request_moderation: Optional[bool] = None


class EventUserUpdate(EventUpdate):
    state_action: Optional[UserStateAction] = None


class EventAdminUpdate(EventUpdate):
    state_action: Optional[AdminStateAction] = None


class EventShortResponse(BaseModel):
    id: int
    title: str
    annotation: str
    category: CategoryResponse
    initiator: UserShort
    event_date: datetime
    paid: bool
    confirmed_requests: int = 0
    views: int = 0

    model_config = {"from_attributes": True}


class EventFullResponse(EventShortResponse):
    description: Optional[str]
    location: Location
    participant_limit: int
    request_moderation: bool
    state: EventState
    created_at: datetime
    published_on: Optional[datetime]
