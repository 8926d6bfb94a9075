"""
Owner endpoints for events: create, list, fetch and edit one's own events.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.api.deps import get_hit_counter, get_page
from eventhub.db.session import get_db
from eventhub.schemas.common import Page
from eventhub.schemas.event import EventCreate, EventFullResponse, EventShortResponse, EventUserUpdate
from eventhub.services import event_service
from eventhub.services.interfaces.hit_counter import HitCounter

router = APIRouter(prefix="/users/{user_id}/events", tags=["Private: events"])


@router.post("", response_model=EventFullResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    user_id: int,
    event_data: EventCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. It starts in review (PENDING)."""
    return await event_service.create_event(db, user_id, event_data)


@router.get("", response_model=list[EventShortResponse])
async def list_own_events(
    user_id: int,
    page: Page = Depends(get_page),
    db: AsyncSession = Depends(get_db),
    counter: HitCounter = Depends(get_hit_counter),
):
    return await event_service.get_user_events(db, counter, user_id, page)


@router.get("/{event_id}", response_model=EventFullResponse)
async def get_own_event(
    user_id: int,
    event_id: int,
    db: AsyncSession = Depends(get_db),
    counter: HitCounter = Depends(get_hit_counter),
):
    return await event_service.get_user_event(db, counter, user_id, event_id)


@router.patch("/{event_id}", response_model=EventFullResponse)
async def update_own_event(
    user_id: int,
    event_id: int,
    update_data: EventUserUpdate,
    db: AsyncSession = Depends(get_db),
    counter: HitCounter = Depends(get_hit_counter),
):
    """
    Edit a pending or canceled event, optionally sending it to review or
    withdrawing it. Published events cannot be changed by their owner.
    """
    return await event_service.update_event_by_user(db, counter, user_id, event_id, update_data)
