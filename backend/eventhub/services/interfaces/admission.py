"""
Admission guard interface.
Allows swapping between different per-event serialization approaches.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager


class AdmissionGuard(ABC):
    """
    Serializes capacity-affecting admissions for a single event.

    The guard narrows the race window; the conditional version bump on the
    event row is what finally rejects a concurrent writer.

    Implementations:
    - LocalAdmission: asyncio.Lock per event, single process
    - RedisAdmission: distributed Redis lock, many processes
    - OptimisticAdmission: no guard, rely on the version check alone
    """

    name: str = "abstract"

    @abstractmethod
    def hold(self, event_id: int) -> AsyncContextManager[None]:
        """
        Context manager held around the read-count/compare/write/commit sequence.

        Raises:
            ConflictError: the guard could not be obtained in time
        """
