"""
Pydantic schemas for participation requests and batch decisions.
"""

import enum
from datetime import datetime

from pydantic import BaseModel, Field

from eventhub.models.participation import RequestStatus


class RequestDecision(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class ParticipationRequestResponse(BaseModel):
    id: int
    event_id: int
    requester_id: int
    status: RequestStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class RequestStatusUpdate(BaseModel):
    request_ids: list[int] = Field(..., min_length=1)
    status: RequestDecision


class RequestStatusUpdateResult(BaseModel):
    confirmed_requests: list[ParticipationRequestResponse] = Field(default_factory=list)
    rejected_requests: list[ParticipationRequestResponse] = Field(default_factory=list)
