from eventhub.models.user import User
from eventhub.models.category import Category
from eventhub.models.event import Event, EventState
from eventhub.models.participation import ParticipationRequest, RequestStatus

__all__ = [
    "User", "Category",
    "Event", "EventState",
    "ParticipationRequest", "RequestStatus",
]
