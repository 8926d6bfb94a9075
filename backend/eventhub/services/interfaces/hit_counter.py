"""
Hit counter interface: the contract of the external stats service.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from eventhub.schemas.stats import ViewStats


class HitCounter(ABC):
    """
    Append-only hit log with range-aggregated counts per URI.

    Implementations:
    - StatsClient: HTTP client for the stats service
    - test doubles that keep hits in memory
    """

    @abstractmethod
    async def record_hit(self, app: str, uri: str, ip: str) -> None:
        """Record one visit of `uri` by client `ip`. Fire-and-forget."""

    @abstractmethod
    async def query_hits(
        self,
        start: datetime,
        end: datetime,
        uris: list[str],
        unique: bool = False,
    ) -> list[ViewStats]:
        """
        Aggregated hits per URI in [start, end].

        Args:
            uris: URIs to report on; empty means all
            unique: count each client ip once per URI
        """
