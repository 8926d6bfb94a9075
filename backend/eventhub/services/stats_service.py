"""
Stats merge layer.

Joins confirmed-request counts (from the database) and view counts (from the
hit counter service) onto events, and implements the in-memory filtering and
sorting used by public listings.

View counts are best-effort. Whatever goes wrong while talking to the hit
counter, the caller gets zero views instead of an error. Confirmed counts come
from the database and are authoritative; they are the same numbers the
admission controller compares against participant limits.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.config import get_settings
from eventhub.core.logging import get_logger
from eventhub.core.metrics import record_stats_error
from eventhub.db.base import utcnow
from eventhub.models.event import Event
from eventhub.models.participation import ParticipationRequest, RequestStatus
from eventhub.schemas.event import EventSort
from eventhub.services.interfaces.hit_counter import HitCounter

logger = get_logger(__name__)
settings = get_settings()

EVENTS_PATH = "/events"


def event_uri(event_id: int) -> str:
    return f"{EVENTS_PATH}/{event_id}"


async def get_confirmed_counts(db: AsyncSession, event_ids: Iterable[int]) -> dict[int, int]:
    """CONFIRMED requests per event id; ids without requests map to 0."""
    ids = list(event_ids)
    if not ids:
        return {}

    result = await db.execute(
        select(ParticipationRequest.event_id, func.count(ParticipationRequest.id))
        .where(
            ParticipationRequest.event_id.in_(ids),
            ParticipationRequest.status == RequestStatus.CONFIRMED,
        )
        .group_by(ParticipationRequest.event_id)
    )
    counts = dict.fromkeys(ids, 0)
    counts.update({event_id: count for event_id, count in result.all()})
    return counts


async def get_confirmed_count(db: AsyncSession, event_id: int) -> int:
    result = await db.execute(
        select(func.count(ParticipationRequest.id)).where(
            ParticipationRequest.event_id == event_id,
            ParticipationRequest.status == RequestStatus.CONFIRMED,
        )
    )
    return result.scalar_one()


def _all_time_window() -> tuple[datetime, datetime]:
    now = utcnow()
    span = timedelta(days=365 * settings.STATS_WINDOW_YEARS)
    return now - span, now + span


async def get_view_counts(counter: HitCounter, events: list[Event]) -> dict[int, int]:
    """
    Unique views per event id, from one batched hit counter query.

    Returned URIs are mapped back by their id suffix; events the counter does
    not mention, and all events when the counter fails, get 0.
    """
    if not events:
        return {}

    views = dict.fromkeys((event.id for event in events), 0)
    start, end = _all_time_window()
    uris = [event_uri(event_id) for event_id in views]

    try:
        stats = await counter.query_hits(start, end, uris, unique=True)
    except Exception as e:
        record_stats_error("query_hits")
        logger.warning("view_counts_unavailable", events=len(uris), error=str(e))
        return views

    prefix = EVENTS_PATH + "/"
    for item in stats:
        if not item.uri or not item.uri.startswith(prefix):
            continue
        try:
            event_id = int(item.uri[len(prefix):])
        except ValueError:
            logger.debug("view_uri_ignored", uri=item.uri)
            continue
        if event_id in views:
            views[event_id] += item.hits

    return views


async def enrich_events(
    db: AsyncSession,
    counter: HitCounter,
    events: list[Event],
    confirmed: Optional[dict[int, int]] = None,
) -> list[Event]:
    """Fill `confirmed_requests` and `views` on each event in place."""
    if not events:
        logger.debug("enrich_skipped", reason="no_events")
        return events

    if confirmed is None:
        confirmed = await get_confirmed_counts(db, [event.id for event in events])
    views = await get_view_counts(counter, events)

    for event in events:
        event.confirmed_requests = confirmed.get(event.id, 0)
        event.views = views.get(event.id, 0)

    logger.debug("events_enriched", count=len(events))
    return events


async def record_hit(counter: HitCounter, uri: str, ip: str) -> None:
    try:
        await counter.record_hit(settings.STATS_APP_NAME, uri, ip)
    except Exception as e:
        record_stats_error("record_hit")
        logger.warning("hit_not_recorded", uri=uri, error=str(e))


async def record_event_hits(counter: HitCounter, events: list[Event], ip: str) -> None:
    await asyncio.gather(*(record_hit(counter, event_uri(event.id), ip) for event in events))


async def record_listing_hit(counter: HitCounter, ip: str) -> None:
    await record_hit(counter, EVENTS_PATH, ip)


def is_available(event: Event, confirmed: dict[int, int]) -> bool:
    return event.is_unlimited or event.participant_limit > confirmed.get(event.id, 0)


def apply_public_filters(
    events: list[Event],
    confirmed: dict[int, int],
    text: Optional[str] = None,
    categories: Optional[list[int]] = None,
    paid: Optional[bool] = None,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
    only_available: bool = False,
) -> list[Event]:
    needle = text.lower() if text else None
    wanted_categories = set(categories) if categories else None

    def keep(event: Event) -> bool:
        if needle is not None:
            in_annotation = needle in event.annotation.lower()
            in_description = event.description is not None and needle in event.description.lower()
            if not (in_annotation or in_description):
                return False
        if wanted_categories is not None and event.category_id not in wanted_categories:
            return False
        if paid is not None and event.paid != paid:
            return False
        if range_start is not None and event.event_date < range_start:
            return False
        if range_end is not None and event.event_date > range_end:
            return False
        if only_available and not is_available(event, confirmed):
            return False
        return True

    return [event for event in events if keep(event)]


def sort_events(events: list[Event], sort: Optional[EventSort]) -> list[Event]:
    """VIEWS: most viewed first. EVENT_DATE: soonest first. None: input order."""
    if sort == EventSort.VIEWS:
        return sorted(events, key=lambda event: event.views, reverse=True)
    if sort == EventSort.EVENT_DATE:
        return sorted(events, key=lambda event: event.event_date)
    return list(events)
