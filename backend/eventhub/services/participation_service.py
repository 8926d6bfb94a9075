"""
Admission controller: participation requests and capacity accounting.

CONCURRENCY STRATEGY: Per-event guard + Optimistic Locking with Retry
=====================================================================

Problem:
  Two users register for the last slot simultaneously.
  Both count confirmed=limit-1, both insert a CONFIRMED request.
  Result: Oversold event.

Solution:
  1. Enter the AdmissionGuard for the event (asyncio lock, Redis lock or
     nothing, see strategy_factory.py). This keeps most contenders from
     even reading the counts at the same time.
  2. Read the event (with its version) and the CONFIRMED count, run the
     admission checks.
  3. UPDATE events SET version = version + 1
     WHERE id = :event_id AND version = :seen_version
     If rows_affected == 0 another admission committed in between -> retry.
  4. Write the request(s) and commit, still inside the guard.

  The version bump turns the read-count/compare/write sequence into a
  compare-and-swap on the event row, so capacity holds even when the guard
  fails open. Confirmed counts are never stored: they are always counted
  from participation_requests, the same query the listings use.

Batch decisions follow the same path. Requests are confirmed in the order
the owner listed them until the limit is reached; the rest of the batch is
rejected, and once the event is full every other PENDING request for it is
rejected too.
"""

from contextlib import asynccontextmanager
from time import perf_counter
from typing import AsyncIterator, Awaitable, Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.config import get_settings
from eventhub.core.exceptions import AuthorizationError, ConflictError, NotFoundError
from eventhub.core.logging import get_logger
from eventhub.core.metrics import (
    admission_guard_wait,
    admission_retries,
    record_admission,
    record_request_transition,
)
from eventhub.models.event import Event, EventState
from eventhub.models.participation import ParticipationRequest, RequestStatus
from eventhub.schemas.participation import (
    ParticipationRequestResponse,
    RequestDecision,
    RequestStatusUpdate,
    RequestStatusUpdateResult,
)
from eventhub.services.interfaces.admission import AdmissionGuard
from eventhub.services.stats_service import get_confirmed_count
from eventhub.services.user_service import get_user

logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def _guarded(guard: AdmissionGuard, event_id: int) -> AsyncIterator[None]:
    start = perf_counter()
    async with guard.hold(event_id):
        admission_guard_wait.labels(strategy=guard.name).observe(perf_counter() - start)
        yield


async def _load_event(db: AsyncSession, event_id: int) -> Event:
    # populate_existing: the version must be re-read even if the event is already in the session
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise NotFoundError(f"Event with id={event_id} was not found")
    return event


async def _bump_event_version(db: AsyncSession, event: Event) -> bool:
    """Conditional version bump; False means a concurrent admission won."""
    result = await db.execute(
        update(Event)
        .where(Event.id == event.id, Event.version == event.version)
        .values(version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _version_conflict(db: AsyncSession, event_id: int, attempt: int) -> None:
    admission_retries.inc()
    logger.info("admission_retry", event_id=event_id, attempt=attempt, reason="version_conflict")
    await db.rollback()
    if attempt == settings.MAX_ADMISSION_RETRIES:
        record_admission("conflict")
        raise ConflictError("The event is being updated concurrently. Please try again.")


async def _has_live_request(db: AsyncSession, requester_id: int, event_id: int) -> bool:
    result = await db.execute(
        select(ParticipationRequest.id).where(
            ParticipationRequest.requester_id == requester_id,
            ParticipationRequest.event_id == event_id,
            ParticipationRequest.status != RequestStatus.CANCELED,
        )
    )
    return result.first() is not None


async def get_user_requests(db: AsyncSession, user_id: int) -> list[ParticipationRequest]:
    await get_user(db, user_id)
    result = await db.execute(
        select(ParticipationRequest)
        .where(ParticipationRequest.requester_id == user_id)
        .order_by(ParticipationRequest.id)
    )
    return list(result.scalars().all())


async def create_request(
    db: AsyncSession,
    guard: AdmissionGuard,
    user_id: int,
    event_id: int,
) -> ParticipationRequest:
    """
    Register `user_id` for `event_id`.

    The request starts PENDING and is confirmed right away when the event
    needs no moderation or has no participant limit.
    """
    await get_user(db, user_id)

    async with _guarded(guard, event_id):
        for attempt in range(1, settings.MAX_ADMISSION_RETRIES + 1):
            event = await _load_event(db, event_id)

            if event.initiator_id == user_id:
                raise ConflictError("Initiator cannot request participation in own event")
            if event.state != EventState.PUBLISHED:
                raise ConflictError("Cannot participate in an unpublished event")
            if await _has_live_request(db, user_id, event_id):
                raise ConflictError(f"User {user_id} already has a request for event {event_id}")

            confirmed = await get_confirmed_count(db, event_id)
            if not event.is_unlimited and confirmed >= event.participant_limit:
                logger.warning(
                    "request_rejected_capacity",
                    event_id=event_id,
                    limit=event.participant_limit,
                    confirmed=confirmed,
                )
                record_admission("rejected")
                raise ConflictError("The participant limit has been reached")

            if not await _bump_event_version(db, event):
                await _version_conflict(db, event_id, attempt)
                continue

            status = RequestStatus.PENDING
            if not event.request_moderation or event.is_unlimited:
                status = RequestStatus.CONFIRMED

            request = ParticipationRequest(event_id=event_id, requester_id=user_id, status=status)
            db.add(request)
            try:
                await db.commit()
            except IntegrityError:
                # Live-request unique index: a parallel registration by the same user
                await db.rollback()
                raise ConflictError(f"User {user_id} already has a request for event {event_id}")

            record_admission(status.value.lower())
            if status == RequestStatus.CONFIRMED:
                record_request_transition(status.value)
            logger.info(
                "request_created",
                request_id=request.id,
                event_id=event_id,
                requester_id=user_id,
                status=status.value,
                attempt=attempt,
            )
            return request

    # Loop always returns or raises
    raise ConflictError("Registration failed unexpectedly")


async def _load_request(db: AsyncSession, request_id: int) -> ParticipationRequest:
    result = await db.execute(
        select(ParticipationRequest)
        .where(ParticipationRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError(f"Request with id={request_id} was not found")
    return request


async def cancel_request(
    db: AsyncSession,
    guard: AdmissionGuard,
    user_id: int,
    request_id: int,
) -> ParticipationRequest:
    """
    Cancel one's own request; a confirmed request gives its slot back.

    Runs as an admission like any other status change, so a batch decision
    that read the request as PENDING loses its version check and re-reads it.
    """
    request = await _load_request(db, request_id)
    if request.requester_id != user_id:
        logger.warning("request_cancel_forbidden", request_id=request_id, user_id=user_id)
        raise AuthorizationError("Only the requester may cancel this request")
    event_id = request.event_id

    async with _guarded(guard, event_id):
        for attempt in range(1, settings.MAX_ADMISSION_RETRIES + 1):
            request = await _load_request(db, request_id)
            event = await _load_event(db, event_id)

            if not await _bump_event_version(db, event):
                await _version_conflict(db, event_id, attempt)
                continue

            previous = request.status
            request.status = RequestStatus.CANCELED
            await db.commit()

            record_request_transition(RequestStatus.CANCELED.value)
            logger.info(
                "request_canceled",
                request_id=request_id,
                event_id=event_id,
                previous_status=previous.value,
            )
            return request

    raise ConflictError("Request cancellation failed unexpectedly")


async def change_capacity(
    db: AsyncSession,
    guard: AdmissionGuard,
    event_id: int,
    participant_limit: int,
    apply_changes: Callable[[Event], Awaitable[None]],
) -> Event:
    """
    Apply an event edit that sets a new participant limit.

    The limit may not drop below the number of CONFIRMED participants (0
    stays unlimited). `apply_changes` mutates the freshly loaded event and is
    re-run from scratch if a concurrent admission wins the version check.
    """
    async with _guarded(guard, event_id):
        for attempt in range(1, settings.MAX_ADMISSION_RETRIES + 1):
            event = await _load_event(db, event_id)

            confirmed = await get_confirmed_count(db, event_id)
            if participant_limit > 0 and confirmed > participant_limit:
                logger.warning(
                    "capacity_change_rejected",
                    event_id=event_id,
                    limit=participant_limit,
                    confirmed=confirmed,
                )
                raise ConflictError(
                    f"Participant limit {participant_limit} is below the {confirmed} confirmed participants"
                )

            if not await _bump_event_version(db, event):
                await _version_conflict(db, event_id, attempt)
                continue

            await apply_changes(event)
            event.participant_limit = participant_limit
            await db.commit()

            logger.info("capacity_changed", event_id=event_id, limit=participant_limit, confirmed=confirmed)
            return event

    raise ConflictError("Capacity change failed unexpectedly")


async def get_event_requests(db: AsyncSession, user_id: int, event_id: int) -> list[ParticipationRequest]:
    await get_user(db, user_id)
    event = await _load_event(db, event_id)
    if event.initiator_id != user_id:
        raise AuthorizationError("Only the event initiator can view its requests")

    result = await db.execute(
        select(ParticipationRequest)
        .where(ParticipationRequest.event_id == event_id)
        .order_by(ParticipationRequest.id)
    )
    return list(result.scalars().all())


async def update_request_statuses(
    db: AsyncSession,
    guard: AdmissionGuard,
    user_id: int,
    event_id: int,
    update_data: RequestStatusUpdate,
) -> RequestStatusUpdateResult:
    """
    Confirm or reject a batch of PENDING requests for an owned event.

    All preconditions are checked before anything changes: every id must
    exist, belong to this event and still be PENDING.
    """
    await get_user(db, user_id)
    event = await _load_event(db, event_id)
    if event.initiator_id != user_id:
        logger.warning("request_update_forbidden", event_id=event_id, user_id=user_id)
        raise AuthorizationError("Only the event initiator can change request statuses")

    request_ids = list(dict.fromkeys(update_data.request_ids))

    async with _guarded(guard, event_id):
        for attempt in range(1, settings.MAX_ADMISSION_RETRIES + 1):
            event = await _load_event(db, event_id)
            result = await db.execute(
                select(ParticipationRequest)
                .where(ParticipationRequest.id.in_(request_ids))
                .execution_options(populate_existing=True)
            )
            found = {request.id: request for request in result.scalars().all()}

            missing = [request_id for request_id in request_ids if request_id not in found]
            if missing:
                raise NotFoundError(f"Requests with ids={missing} were not found")
            batch = [found[request_id] for request_id in request_ids]

            for request in batch:
                if request.event_id != event_id:
                    raise ConflictError(
                        f"Request with id={request.id} does not belong to event with id={event_id}"
                    )
            for request in batch:
                if request.status != RequestStatus.PENDING:
                    raise ConflictError(
                        f"Request with id={request.id} must have status PENDING, not {request.status.value}"
                    )

            if not await _bump_event_version(db, event):
                await _version_conflict(db, event_id, attempt)
                continue

            if update_data.status == RequestDecision.REJECTED:
                confirmed, rejected = [], batch
                for request in batch:
                    request.status = RequestStatus.REJECTED
            else:
                confirmed, rejected = await _confirm_in_order(db, event, batch, request_ids)

            await db.commit()

            record_request_transition(RequestStatus.CONFIRMED.value, len(confirmed))
            record_request_transition(RequestStatus.REJECTED.value, len(rejected))
            logger.info(
                "request_statuses_updated",
                event_id=event_id,
                decision=update_data.status.value,
                confirmed=len(confirmed),
                rejected=len(rejected),
            )
            return RequestStatusUpdateResult(
                confirmed_requests=[ParticipationRequestResponse.model_validate(r) for r in confirmed],
                rejected_requests=[ParticipationRequestResponse.model_validate(r) for r in rejected],
            )

    raise ConflictError("Request status update failed unexpectedly")


async def _confirm_in_order(
    db: AsyncSession,
    event: Event,
    batch: list[ParticipationRequest],
    batch_ids: list[int],
) -> tuple[list[ParticipationRequest], list[ParticipationRequest]]:
    confirmed: list[ParticipationRequest] = []
    rejected: list[ParticipationRequest] = []
    limit = event.participant_limit
    running = await get_confirmed_count(db, event.id)

    for request in batch:
        if event.is_unlimited or running < limit:
            request.status = RequestStatus.CONFIRMED
            confirmed.append(request)
            running += 1
        else:
            request.status = RequestStatus.REJECTED
            rejected.append(request)

    if not event.is_unlimited and running >= limit:
        # Event is full: nobody else can be confirmed, close all other pending requests
        result = await db.execute(
            select(ParticipationRequest).where(
                ParticipationRequest.event_id == event.id,
                ParticipationRequest.status == RequestStatus.PENDING,
                ParticipationRequest.id.not_in(batch_ids),
            )
        )
        leftovers = list(result.scalars().all())
        for request in leftovers:
            request.status = RequestStatus.REJECTED
        rejected.extend(leftovers)
        if leftovers:
            logger.info("pending_requests_closed", event_id=event.id, count=len(leftovers))

    return confirmed, rejected
