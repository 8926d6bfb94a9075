"""
Optimistic admission strategy - no guard.
Relies entirely on the event version check.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from eventhub.services.interfaces.admission import AdmissionGuard


class OptimisticAdmission(AdmissionGuard):
    """
    No serialization - always proceed.
    Concurrent admissions on one event collide on the version bump and retry.

    Use when:
    - contention per event is low
    - simplicity preferred over fewer retries
    """

    name = "optimistic"

    @asynccontextmanager
    async def hold(self, event_id: int) -> AsyncIterator[None]:
        yield
