"""
Admission strategy factory.
Configures which admission guard to use.
"""

from typing import Optional

from eventhub.core.config import get_settings
from eventhub.infrastructure.redis_client import get_redis
from eventhub.services.admission_service import RedisAdmission
from eventhub.services.interfaces.admission import AdmissionGuard
from eventhub.services.interfaces.local_admission import LocalAdmission
from eventhub.services.interfaces.optimistic_admission import OptimisticAdmission


def get_admission_strategy() -> AdmissionGuard:
    """
    Build the configured admission guard.

    ADMISSION_STRATEGY:
    - local (default): asyncio lock per event, single process
    - redis: distributed lock, several workers
    - optimistic: version check only
    """
    settings = get_settings()
    strategy = settings.ADMISSION_STRATEGY.lower()

    if strategy == "redis":
        return RedisAdmission(
            get_redis(),
            lock_timeout=settings.ADMISSION_LOCK_TIMEOUT,
            lock_wait=settings.ADMISSION_LOCK_WAIT,
        )
    if strategy == "optimistic":
        return OptimisticAdmission()
    return LocalAdmission()


# Singleton instance
_strategy: Optional[AdmissionGuard] = None


def get_admission() -> AdmissionGuard:
    """Get admission guard singleton."""
    global _strategy
    if _strategy is None:
        _strategy = get_admission_strategy()
    return _strategy
