"""
Admin endpoints: moderation of events, registration of users and categories.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.api.deps import get_admission_guard, get_hit_counter, get_page
from eventhub.db.session import get_db
from eventhub.models.event import EventState
from eventhub.schemas.category import CategoryCreate, CategoryResponse
from eventhub.schemas.common import Page, parse_query_datetime
from eventhub.schemas.event import EventAdminUpdate, EventFullResponse
from eventhub.schemas.user import UserCreate, UserResponse
from eventhub.services import category_service, event_service, user_service
from eventhub.services.interfaces.admission import AdmissionGuard
from eventhub.services.interfaces.hit_counter import HitCounter

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/events", response_model=list[EventFullResponse])
async def search_events(
    users: Optional[list[int]] = Query(None),
    states: Optional[list[EventState]] = Query(None),
    categories: Optional[list[int]] = Query(None),
    range_start: Optional[str] = Query(None),
    range_end: Optional[str] = Query(None),
    page: Page = Depends(get_page),
    db: AsyncSession = Depends(get_db),
    counter: HitCounter = Depends(get_hit_counter),
):
    """Events in any state, filtered by initiator, state, category and date window."""
    return await event_service.get_events_by_admin(
        db,
        counter,
        page,
        users=users,
        states=states,
        categories=categories,
        range_start=parse_query_datetime(range_start, "range_start"),
        range_end=parse_query_datetime(range_end, "range_end"),
    )


@router.patch("/events/{event_id}", response_model=EventFullResponse)
async def moderate_event(
    event_id: int,
    update_data: EventAdminUpdate,
    db: AsyncSession = Depends(get_db),
    counter: HitCounter = Depends(get_hit_counter),
    guard: AdmissionGuard = Depends(get_admission_guard),
):
    """Edit an event and publish or reject it."""
    return await event_service.update_event_by_admin(db, counter, guard, event_id, update_data)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
):
    return await user_service.create_user(db, user_data)


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category_endpoint(
    category_data: CategoryCreate,
    db: AsyncSession = Depends(get_db),
):
    return await category_service.create_category(db, category_data)
