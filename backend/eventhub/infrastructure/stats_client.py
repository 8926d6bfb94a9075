"""
HTTP client for the hit counter (stats) service.

The stats service is best-effort: every transport or HTTP failure is logged
and swallowed. Recording degrades to a no-op, querying to an empty list.
"""

from datetime import datetime
from typing import Optional

import httpx

from eventhub.core.config import get_settings
from eventhub.core.logging import get_logger
from eventhub.core.metrics import record_stats_error
from eventhub.db.base import utcnow
from eventhub.schemas.common import DATE_FORMAT
from eventhub.schemas.stats import EndpointHit, ViewStats
from eventhub.services.interfaces.hit_counter import HitCounter

logger = get_logger(__name__)


class StatsClient(HitCounter):
    def __init__(
        self,
        base_url: str,
        timeout: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def record_hit(self, app: str, uri: str, ip: str) -> None:
        hit = EndpointHit(app=app, uri=uri, ip=ip, timestamp=utcnow().strftime(DATE_FORMAT))
        try:
            response = await self._client.post("/hit", json=hit.model_dump())
            response.raise_for_status()
            logger.debug("hit_recorded", app=app, uri=uri, ip=ip)
        except httpx.HTTPStatusError as e:
            record_stats_error("record_hit")
            logger.warning("hit_record_rejected", uri=uri, status_code=e.response.status_code)
        except httpx.HTTPError as e:
            record_stats_error("record_hit")
            logger.warning("stats_service_unavailable", operation="record_hit", error=str(e))

    async def query_hits(
        self,
        start: datetime,
        end: datetime,
        uris: list[str],
        unique: bool = False,
    ) -> list[ViewStats]:
        params = {
            "start": start.strftime(DATE_FORMAT),
            "end": end.strftime(DATE_FORMAT),
            "unique": "true" if unique else "false",
        }
        if uris:
            params["uris"] = ",".join(uris)

        try:
            response = await self._client.get("/stats", params=params)
            response.raise_for_status()
            return [ViewStats.model_validate(item) for item in response.json()]
        except httpx.HTTPError as e:
            record_stats_error("query_hits")
            logger.warning("stats_service_unavailable", operation="query_hits", error=str(e))
        except ValueError as e:
            # Body is not JSON or not a list of {app, uri, hits}
            record_stats_error("query_hits")
            logger.warning("stats_response_malformed", error=str(e))
        return []

    async def close(self) -> None:
        await self._client.aclose()


_stats_client: Optional[StatsClient] = None


def get_stats_client() -> StatsClient:
    global _stats_client
    if _stats_client is None:
        settings = get_settings()
        _stats_client = StatsClient(settings.STATS_SERVER_URL, timeout=settings.STATS_TIMEOUT)
    return _stats_client


async def close_stats_client() -> None:
    global _stats_client
    if _stats_client is not None:
        await _stats_client.close()
        _stats_client = None
