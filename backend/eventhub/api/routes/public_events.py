"""
Public event endpoints. Only published events are visible here, and every
call is recorded with the hit counter.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.api.deps import get_client_ip, get_hit_counter, get_page
from eventhub.db.session import get_db
from eventhub.schemas.common import Page, parse_query_datetime
from eventhub.schemas.event import EventFullResponse, EventShortResponse, EventSort
from eventhub.services import event_service
from eventhub.services.interfaces.hit_counter import HitCounter

router = APIRouter(prefix="/events", tags=["Public: events"])


@router.get("", response_model=list[EventShortResponse])
async def list_events_endpoint(
    text: Optional[str] = Query(None),
    categories: Optional[list[int]] = Query(None),
    paid: Optional[bool] = Query(None),
    range_start: Optional[str] = Query(None),
    range_end: Optional[str] = Query(None),
    only_available: bool = Query(False),
    sort: Optional[EventSort] = Query(None),
    page: Page = Depends(get_page),
    ip: str = Depends(get_client_ip),
    db: AsyncSession = Depends(get_db),
    counter: HitCounter = Depends(get_hit_counter),
):
    """
    Search published events.

    `text` matches annotation or description, case-insensitively. Pagination
    is applied after sorting.
    """
    return await event_service.list_public_events(
        db,
        counter,
        ip,
        page,
        text=text,
        categories=categories,
        paid=paid,
        range_start=parse_query_datetime(range_start, "range_start"),
        range_end=parse_query_datetime(range_end, "range_end"),
        only_available=only_available,
        sort=sort,
    )


@router.get("/{event_id}", response_model=EventFullResponse)
async def get_event_endpoint(
    event_id: int,
    ip: str = Depends(get_client_ip),
    db: AsyncSession = Depends(get_db),
    counter: HitCounter = Depends(get_hit_counter),
):
    return await event_service.get_public_event(db, counter, event_id, ip)
