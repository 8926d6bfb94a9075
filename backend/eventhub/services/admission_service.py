"""
Distributed admission guard for multi-process deployments.
Implements AdmissionGuard using a Redis lock per event.

Circuit Breaker Pattern:
  On Redis failure, the guard "fails open" and lets the admission proceed.
  The database stays authoritative: the conditional version bump on the
  event row still rejects a concurrent writer, so capacity cannot be
  oversold, admissions only retry more often while Redis is down.

  A lock that cannot be obtained within ADMISSION_LOCK_WAIT is a different
  case: Redis works but the event is busy, and the caller gets a 409.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as redis
from redis.exceptions import LockError, RedisError

from eventhub.core.exceptions import ConflictError
from eventhub.core.logging import get_logger
from eventhub.services.interfaces.admission import AdmissionGuard

logger = get_logger(__name__)

LOCK_KEY = "admission:event:{event_id}"


class RedisAdmission(AdmissionGuard):
    """
    Redis-based admission guard.

    Use when:
    - several API workers write to the same database
    - flash registrations on popular events
    """

    name = "redis"

    def __init__(self, client: redis.Redis, lock_timeout: float = 10.0, lock_wait: float = 5.0):
        self.redis = client
        self.lock_timeout = lock_timeout
        self.lock_wait = lock_wait

    @asynccontextmanager
    async def hold(self, event_id: int) -> AsyncIterator[None]:
        lock = self.redis.lock(
            LOCK_KEY.format(event_id=event_id),
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_wait,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.warning("admission_lock_unavailable", event_id=event_id, error=str(e))
            acquired = None

        if acquired is None:
            yield
            return

        if not acquired:
            logger.warning("admission_lock_timeout", event_id=event_id, waited=self.lock_wait)
            raise ConflictError("Event is handling other registrations, please retry")

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Held longer than lock_timeout; the version check covered the overlap
                logger.warning("admission_lock_expired", event_id=event_id)
            except RedisError as e:
                logger.warning("admission_lock_release_failed", event_id=event_id, error=str(e))
