"""
Concurrency tests for the admission controller.

Registrations run in parallel, each on its own session, the way separate
HTTP requests would. The confirmed count must never pass the limit.
"""

import asyncio

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import select

from eventhub.core.exceptions import ConflictError
from eventhub.models.event import Event
from eventhub.models.participation import ParticipationRequest, RequestStatus
from eventhub.schemas.participation import RequestDecision, RequestStatusUpdate
from eventhub.services import participation_service
from eventhub.services.admission_service import RedisAdmission
from eventhub.services.interfaces.optimistic_admission import OptimisticAdmission
from eventhub.services.stats_service import get_confirmed_count


async def register(session_factory, guard, user_id, event_id):
    async with session_factory() as session:
        try:
            request = await participation_service.create_request(session, guard, user_id, event_id)
            return request.status
        except ConflictError:
            return None


@pytest.mark.asyncio
async def test_parallel_registrations_never_oversell(session_factory, db_session, guard, make_user, make_event):
    """20 users -> 3 slots: exactly 3 confirmed, everybody else gets a conflict."""
    event = await make_event(participant_limit=3, request_moderation=False)
    users = [await make_user() for _ in range(20)]

    results = await asyncio.gather(
        *(register(session_factory, guard, user.id, event.id) for user in users)
    )

    assert results.count(RequestStatus.CONFIRMED) == 3
    assert results.count(None) == 17
    assert await get_confirmed_count(db_session, event.id) == 3


@pytest.mark.asyncio
async def test_parallel_registrations_same_user(session_factory, db_session, guard, make_user, make_event):
    """One live request per user, however many times they click."""
    event = await make_event(participant_limit=10)
    user = await make_user()

    results = await asyncio.gather(
        *(register(session_factory, guard, user.id, event.id) for _ in range(5))
    )

    assert results.count(RequestStatus.PENDING) == 1
    assert results.count(None) == 4


@pytest.mark.asyncio
async def test_registration_bumps_event_version(db_session, guard, make_user, make_event):
    event = await make_event(participant_limit=5)
    before = event.version

    await participation_service.create_request(db_session, guard, (await make_user()).id, event.id)

    result = await db_session.execute(
        select(Event.version).where(Event.id == event.id)
    )
    assert result.scalar_one() == before + 1


@pytest.mark.asyncio
async def test_stale_version_is_detected(session_factory, make_event):
    event = await make_event(participant_limit=5)

    async with session_factory() as first, session_factory() as second:
        seen = await first.get(Event, event.id)
        other = await second.get(Event, event.id)

        assert await participation_service._bump_event_version(second, other)
        await second.commit()

        assert not await participation_service._bump_event_version(first, seen)


@pytest.mark.asyncio
async def test_version_conflicts_exhaust_retries(db_session, make_user, make_event, monkeypatch):
    event = await make_event(participant_limit=5)
    user = await make_user()

    async def always_stale(db, event):
        return False

    monkeypatch.setattr(participation_service, "_bump_event_version", always_stale)
    retries_before = REGISTRY.get_sample_value("admission_version_conflicts_total") or 0

    with pytest.raises(ConflictError):
        await participation_service.create_request(db_session, OptimisticAdmission(), user.id, event.id)

    retries_after = REGISTRY.get_sample_value("admission_version_conflicts_total")
    assert retries_after - retries_before == participation_service.settings.MAX_ADMISSION_RETRIES


def interleave_once(monkeypatch, action):
    """Run `action` right before the next version check, as a concurrent writer would."""
    original = participation_service._bump_event_version
    fired = []

    async def bump_after_action(db, event):
        if not fired:
            fired.append(True)
            await action()
        return await original(db, event)

    monkeypatch.setattr(participation_service, "_bump_event_version", bump_after_action)
    return fired


@pytest.mark.asyncio
async def test_cancel_bumps_event_version(db_session, guard, make_user, make_event, make_request):
    event = await make_event(participant_limit=5)
    user = await make_user()
    request = await make_request(event, user)
    before = event.version

    canceled = await participation_service.cancel_request(db_session, guard, user.id, request.id)

    assert canceled.status == RequestStatus.CANCELED
    result = await db_session.execute(select(Event.version).where(Event.id == event.id))
    assert result.scalar_one() == before + 1


@pytest.mark.asyncio
async def test_cancel_during_batch_confirm_wins(
    session_factory, guard, make_user, make_event, make_request, initiator, monkeypatch
):
    """A cancel committed after the batch read its requests must not be overwritten."""
    event = await make_event(participant_limit=5)
    user = await make_user()
    request = await make_request(event, user)

    async def cancel_elsewhere():
        async with session_factory() as session:
            await participation_service.cancel_request(session, OptimisticAdmission(), user.id, request.id)

    fired = interleave_once(monkeypatch, cancel_elsewhere)

    async with session_factory() as session:
        with pytest.raises(ConflictError):
            await participation_service.update_request_statuses(
                session, guard, initiator.id, event.id,
                RequestStatusUpdate(request_ids=[request.id], status=RequestDecision.CONFIRMED),
            )

    assert fired
    async with session_factory() as session:
        stored = await session.get(ParticipationRequest, request.id)
        assert stored.status == RequestStatus.CANCELED
        assert await get_confirmed_count(session, event.id) == 0


@pytest.mark.asyncio
async def test_capacity_change_rechecks_after_concurrent_registration(
    session_factory, guard, make_user, make_event, make_request, monkeypatch
):
    """Limit 3 -> 2 with 2 confirmed races a third registration: the shrink is refused."""
    event = await make_event(participant_limit=3, request_moderation=False)
    for _ in range(2):
        await make_request(event, await make_user(), RequestStatus.CONFIRMED)
    latecomer = await make_user()

    async def register_elsewhere():
        status = await register(session_factory, OptimisticAdmission(), latecomer.id, event.id)
        assert status == RequestStatus.CONFIRMED

    interleave_once(monkeypatch, register_elsewhere)

    async def shrink(target):
        target.title = "Smaller hall"

    async with session_factory() as session:
        with pytest.raises(ConflictError):
            await participation_service.change_capacity(session, guard, event.id, 2, shrink)

    async with session_factory() as session:
        stored = await session.get(Event, event.id)
        assert stored.participant_limit == 3
        assert stored.title != "Smaller hall"
        assert await get_confirmed_count(session, event.id) == 3


class _FakeLock:
    def __init__(self, outcome):
        self.outcome = outcome
        self.released = False

    async def acquire(self):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome

    async def release(self):
        self.released = True


class _FakeRedis:
    def __init__(self, outcome):
        self.lock_obj = _FakeLock(outcome)
        self.keys = []

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.keys.append(name)
        return self.lock_obj


@pytest.mark.asyncio
async def test_redis_guard_holds_and_releases():
    redis = _FakeRedis(True)
    async with RedisAdmission(redis).hold(7):
        pass
    assert redis.keys == ["admission:event:7"]
    assert redis.lock_obj.released


@pytest.mark.asyncio
async def test_redis_guard_busy_event_conflicts():
    with pytest.raises(ConflictError):
        async with RedisAdmission(_FakeRedis(False)).hold(7):
            pass


@pytest.mark.asyncio
async def test_redis_guard_fails_open():
    from redis.exceptions import ConnectionError

    entered = False
    async with RedisAdmission(_FakeRedis(ConnectionError("redis down"))).hold(7):
        entered = True
    assert entered
