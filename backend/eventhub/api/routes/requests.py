"""
Participation endpoints: register, cancel, list, and owner decisions.

Registration, cancellation and batch decisions go through the admission guard so that
confirmed participants never exceed the event's limit under concurrent load.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.api.deps import get_admission_guard
from eventhub.db.session import get_db
from eventhub.schemas.participation import (
    ParticipationRequestResponse,
    RequestStatusUpdate,
    RequestStatusUpdateResult,
)
from eventhub.services import participation_service
from eventhub.services.interfaces.admission import AdmissionGuard

router = APIRouter(prefix="/users/{user_id}", tags=["Private: requests"])


@router.get("/requests", response_model=list[ParticipationRequestResponse])
async def list_own_requests(
    user_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await participation_service.get_user_requests(db, user_id)


@router.post(
    "/requests",
    response_model=ParticipationRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_request_endpoint(
    user_id: int,
    event_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    guard: AdmissionGuard = Depends(get_admission_guard),
):
    """
    Ask to take part in a published event.

    Confirmed immediately when the event needs no moderation or has no
    participant limit; otherwise it waits for the initiator's decision.
    """
    return await participation_service.create_request(db, guard, user_id, event_id)


@router.patch("/requests/{request_id}/cancel", response_model=ParticipationRequestResponse)
async def cancel_request_endpoint(
    user_id: int,
    request_id: int,
    db: AsyncSession = Depends(get_db),
    guard: AdmissionGuard = Depends(get_admission_guard),
):
    return await participation_service.cancel_request(db, guard, user_id, request_id)


@router.get("/events/{event_id}/requests", response_model=list[ParticipationRequestResponse])
async def list_event_requests(
    user_id: int,
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await participation_service.get_event_requests(db, user_id, event_id)


@router.patch("/events/{event_id}/requests", response_model=RequestStatusUpdateResult)
async def decide_event_requests(
    user_id: int,
    event_id: int,
    update_data: RequestStatusUpdate,
    db: AsyncSession = Depends(get_db),
    guard: AdmissionGuard = Depends(get_admission_guard),
):
    """Confirm or reject pending requests in the order given."""
    return await participation_service.update_request_statuses(db, guard, user_id, event_id, update_data)
