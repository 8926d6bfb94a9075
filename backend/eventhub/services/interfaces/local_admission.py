"""
In-process admission guard: one asyncio.Lock per event id.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator

from eventhub.services.interfaces.admission import AdmissionGuard


class LocalAdmission(AdmissionGuard):
    """
    Serializes admissions inside one worker process.

    Use when:
    - a single API process serves the database
    - tests and local development
    """

    name = "local"

    def __init__(self):
        # Locks disappear once no coroutine holds or waits on them
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, event_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(event_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[event_id] = lock
        async with lock:
            yield
