"""
Shared FastAPI dependencies: collaborators, caller address, paging.
"""

from typing import Optional

from fastapi import Query, Request

from eventhub.core.config import get_settings
from eventhub.infrastructure.stats_client import get_stats_client
from eventhub.schemas.common import Page
from eventhub.services.interfaces.admission import AdmissionGuard
from eventhub.services.interfaces.hit_counter import HitCounter
from eventhub.services.strategy_factory import get_admission


def get_hit_counter() -> HitCounter:
    return get_stats_client()


def get_admission_guard() -> AdmissionGuard:
    return get_admission()


def get_client_ip(request: Request) -> str:
    """Caller address as recorded in hits; honours the first X-Forwarded-For entry."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def get_page(
    from_: Optional[int] = Query(0, alias="from"),
    size: Optional[int] = Query(None),
) -> Page:
    """Non-positive `size` falls back to the default page, negative `from` clamps to 0."""
    return Page.of(from_, size, default_size=get_settings().DEFAULT_PAGE_SIZE)
