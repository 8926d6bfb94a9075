from eventhub.schemas.user import UserCreate, UserResponse, UserShort
from eventhub.schemas.category import CategoryCreate, CategoryResponse
from eventhub.schemas.event import (
    AdminStateAction, EventAdminUpdate, EventCreate, EventFullResponse,
    EventShortResponse, EventSort, EventUserUpdate, Location, UserStateAction,
)
from eventhub.schemas.participation import (
    ParticipationRequestResponse, RequestDecision,
    RequestStatusUpdate, RequestStatusUpdateResult,
)
from eventhub.schemas.stats import EndpointHit, ViewStats

__all__ = [
    "UserCreate", "UserResponse", "UserShort",
    "CategoryCreate", "CategoryResponse",
    "EventCreate", "EventUserUpdate", "EventAdminUpdate", "EventFullResponse",
    "EventShortResponse", "EventSort", "Location", "UserStateAction", "AdminStateAction",
    "ParticipationRequestResponse", "RequestDecision",
    "RequestStatusUpdate", "RequestStatusUpdateResult",
    "EndpointHit", "ViewStats",
]
