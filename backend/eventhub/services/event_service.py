"""
Event lifecycle engine.

Owns the Event state machine and who may move an event between states:

    PENDING   --(owner: CANCEL_REVIEW)-->  CANCELED
    PENDING   --(owner: SEND_TO_REVIEW)--> PENDING
    CANCELED  --(owner: SEND_TO_REVIEW)--> PENDING
    PENDING   --(admin: PUBLISH_EVENT)-->  PUBLISHED
    PENDING   --(admin: REJECT_EVENT)-->   CANCELED
    PUBLISHED --> (terminal)

Owners may only edit events that are not published yet, and must keep the
event at least USER_EVENT_LEAD_HOURS ahead. Admins skip the ownership check
and get the looser ADMIN_EVENT_LEAD_HOURS bound.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.config import get_settings
from eventhub.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from eventhub.core.logging import get_logger
from eventhub.core.metrics import record_event_transition
from eventhub.db.base import utcnow
from eventhub.models.event import Event, EventState
from eventhub.schemas.common import Page, validate_range
from eventhub.schemas.event import (
    AdminStateAction,
    EventAdminUpdate,
    EventCreate,
    EventSort,
    EventUpdate,
    EventUserUpdate,
    UserStateAction,
)
from eventhub.services import participation_service, stats_service
from eventhub.services.category_service import get_category
from eventhub.services.interfaces.admission import AdmissionGuard
from eventhub.services.interfaces.hit_counter import HitCounter
from eventhub.services.user_service import get_user

logger = get_logger(__name__)
settings = get_settings()

USER_TRANSITIONS = {
    UserStateAction.SEND_TO_REVIEW: EventState.PENDING,
    UserStateAction.CANCEL_REVIEW: EventState.CANCELED,
}


def _check_event_date(event_date: Optional[datetime], lead_hours: int) -> None:
    if event_date is not None and event_date < utcnow() + timedelta(hours=lead_hours):
        raise ValidationError(
            f"Event date must be at least {lead_hours} hour(s) from now. Value: {event_date.isoformat()}"
        )


def _check_participant_limit(participant_limit: Optional[int]) -> None:
    if participant_limit is not None and participant_limit < 0:
        raise ValidationError("Participant limit must not be negative")


async def _get_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if event is None:
        raise NotFoundError(f"Event with id={event_id} was not found")
    return event


async def _apply_patch(db: AsyncSession, event: Event, data: EventUpdate) -> None:
    """Copy the set, non-null fields of a patch onto the event."""
    if data.category is not None:
        event.category = await get_category(db, data.category)

    fields = data.model_dump(exclude_unset=True, exclude={"state_action", "category", "location"})
    for field, value in fields.items():
        if value is not None:
            setattr(event, field, value)

    if data.location is not None:
        event.location_lat = data.location.lat
        event.location_lon = data.location.lon


def apply_user_state_action(event: Event, action: Optional[UserStateAction]) -> None:
    if action is None:
        return
    event.state = USER_TRANSITIONS[action]
    record_event_transition("user", event.state.value)


def apply_admin_state_action(event: Event, action: Optional[AdminStateAction]) -> None:
    if action is None:
        return

    if action == AdminStateAction.PUBLISH_EVENT:
        if event.state != EventState.PENDING:
            raise ConflictError(
                f"Cannot publish the event because it's not in the right state: {event.state.value}"
            )
        event.state = EventState.PUBLISHED
        event.published_on = utcnow()
    else:
        if event.state == EventState.PUBLISHED:
            raise ConflictError("Cannot reject the event because it's already published")
        event.state = EventState.CANCELED

    record_event_transition("admin", event.state.value)


async def create_event(db: AsyncSession, user_id: int, event_data: EventCreate) -> Event:
    """Create a new event in review (PENDING) on behalf of its initiator."""
    initiator = await get_user(db, user_id)
    category = await get_category(db, event_data.category)

    _check_event_date(event_data.event_date, settings.USER_EVENT_LEAD_HOURS)
    _check_participant_limit(event_data.participant_limit)

    event = Event(
        title=event_data.title,
        annotation=event_data.annotation,
        description=event_data.description,
        event_date=event_data.event_date,
        location_lat=event_data.location.lat,
        location_lon=event_data.location.lon,
        paid=event_data.paid,
        participant_limit=event_data.participant_limit,
        request_moderation=event_data.request_moderation,
        state=EventState.PENDING,
        category=category,
        initiator=initiator,
    )
    db.add(event)
    await db.flush()

    logger.info("event_created", event_id=event.id, initiator_id=user_id, title=event.title)
    return event


async def get_user_events(
    db: AsyncSession,
    counter: HitCounter,
    user_id: int,
    page: Page,
) -> list[Event]:
    await get_user(db, user_id)

    result = await db.execute(
        select(Event)
        .where(Event.initiator_id == user_id)
        .order_by(Event.id)
        .offset(page.offset)
        .limit(page.limit)
    )
    events = list(result.scalars().all())
    logger.debug("user_events_found", user_id=user_id, count=len(events))
    return await stats_service.enrich_events(db, counter, events)


async def get_user_event(db: AsyncSession, counter: HitCounter, user_id: int, event_id: int) -> Event:
    """An owner's own event; someone else's event is reported as not found."""
    event = await _get_event(db, event_id)
    if event.initiator_id != user_id:
        raise NotFoundError(f"Event with id={event_id} was not found")
    await stats_service.enrich_events(db, counter, [event])
    return event


async def update_event_by_user(
    db: AsyncSession,
    counter: HitCounter,
    user_id: int,
    event_id: int,
    update_data: EventUserUpdate,
) -> Event:
    await get_user(db, user_id)
    event = await _get_event(db, event_id)

    if event.initiator_id != user_id:
        logger.warning("event_update_forbidden", event_id=event_id, user_id=user_id)
        raise AuthorizationError("Only the initiator may change this event")
    if event.state == EventState.PUBLISHED:
        raise ConflictError("Only pending or canceled events can be changed")

    _check_event_date(update_data.event_date, settings.USER_EVENT_LEAD_HOURS)
    _check_participant_limit(update_data.participant_limit)

    await _apply_patch(db, event, update_data)
    apply_user_state_action(event, update_data.state_action)
    await db.flush()

    logger.info("event_updated", event_id=event_id, actor="user", state=event.state.value)
    await stats_service.enrich_events(db, counter, [event])
    return event


async def update_event_by_admin(
    db: AsyncSession,
    counter: HitCounter,
    guard: AdmissionGuard,
    event_id: int,
    update_data: EventAdminUpdate,
) -> Event:
    """
    Edit, publish or reject an event as an admin.

    A new participant limit goes through the admission guard and may not drop
    below the participants already confirmed.
    """
    event = await _get_event(db, event_id)

    _check_participant_limit(update_data.participant_limit)
    _check_event_date(update_data.event_date, settings.ADMIN_EVENT_LEAD_HOURS)

    async def apply_changes(target: Event) -> None:
        apply_admin_state_action(target, update_data.state_action)
        await _apply_patch(db, target, update_data)

    if update_data.participant_limit is None:
        await apply_changes(event)
        await db.flush()
    else:
        event = await participation_service.change_capacity(
            db, guard, event_id, update_data.participant_limit, apply_changes
        )

    logger.info("event_updated", event_id=event_id, actor="admin", state=event.state.value)
    await stats_service.enrich_events(db, counter, [event])
    return event


async def get_events_by_admin(
    db: AsyncSession,
    counter: HitCounter,
    page: Page,
    users: Optional[list[int]] = None,
    states: Optional[list[EventState]] = None,
    categories: Optional[list[int]] = None,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
) -> list[Event]:
    validate_range(range_start, range_end)

    query = select(Event)
    if users:
        query = query.where(Event.initiator_id.in_(users))
    if states:
        query = query.where(Event.state.in_(states))
    if categories:
        query = query.where(Event.category_id.in_(categories))
    if range_start is not None:
        query = query.where(Event.event_date >= range_start)
    if range_end is not None:
        query = query.where(Event.event_date <= range_end)

    result = await db.execute(query.order_by(Event.id).offset(page.offset).limit(page.limit))
    events = list(result.scalars().all())
    logger.debug("admin_events_found", count=len(events))
    return await stats_service.enrich_events(db, counter, events)


async def get_published_events(db: AsyncSession) -> list[Event]:
    result = await db.execute(
        select(Event)
        .where(Event.state == EventState.PUBLISHED)
        .order_by(Event.event_date.desc(), Event.id)
    )
    return list(result.scalars().all())


async def list_public_events(
    db: AsyncSession,
    counter: HitCounter,
    ip: str,
    page: Page,
    text: Optional[str] = None,
    categories: Optional[list[int]] = None,
    paid: Optional[bool] = None,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
    only_available: bool = False,
    sort: Optional[EventSort] = None,
) -> list[Event]:
    """
    Public listing pipeline.

    Confirmed counts are computed before filtering because the availability
    predicate needs them; views are merged after hits for the surviving events
    have been recorded. Pagination is applied last so that a VIEWS sort ranks
    the whole result, not just one page of it.
    """
    validate_range(range_start, range_end)

    events = await get_published_events(db)
    confirmed = await stats_service.get_confirmed_counts(db, [event.id for event in events])

    events = stats_service.apply_public_filters(
        events,
        confirmed,
        text=text,
        categories=categories,
        paid=paid,
        range_start=range_start,
        range_end=range_end,
        only_available=only_available,
    )
    logger.debug("public_events_filtered", count=len(events))

    await stats_service.record_event_hits(counter, events, ip)
    await stats_service.record_listing_hit(counter, ip)
    await stats_service.enrich_events(db, counter, events, confirmed=confirmed)

    return page.slice(stats_service.sort_events(events, sort))


async def get_public_event(db: AsyncSession, counter: HitCounter, event_id: int, ip: str) -> Event:
    """A published event; any other state is reported as not found."""
    event = await _get_event(db, event_id)
    if event.state != EventState.PUBLISHED:
        raise NotFoundError(f"Event with id={event_id} was not found")

    await stats_service.record_hit(counter, stats_service.event_uri(event.id), ip)
    await stats_service.enrich_events(db, counter, [event])
    return event
