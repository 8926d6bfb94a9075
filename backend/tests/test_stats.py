"""
Tests for the stats merge layer, the public listing pipeline and the HTTP
client of the stats service.
"""

import json
from datetime import datetime, timezone

import httpx
import pytest
from httpx import AsyncClient

from conftest import future
from eventhub.infrastructure.stats_client import StatsClient
from eventhub.models.event import EventState
from eventhub.models.participation import RequestStatus
from eventhub.schemas.event import EventSort
from eventhub.services import stats_service


@pytest.mark.asyncio
async def test_view_counts_merge_by_uri_suffix(db_session, hit_counter, make_event):
    first = await make_event()
    second = await make_event()
    hit_counter.views = {f"/events/{first.id}": 7, "/events/not-a-number": 3, "/events": 11}

    await stats_service.enrich_events(db_session, hit_counter, [first, second])

    assert first.views == 7
    assert second.views == 0
    # One batched query, unique hits, over an effectively unbounded window
    assert len(hit_counter.queries) == 1
    query = hit_counter.queries[0]
    assert query["unique"] is True
    assert sorted(query["uris"]) == sorted([f"/events/{first.id}", f"/events/{second.id}"])
    assert query["start"].year < 2000 and query["end"].year > 2100


@pytest.mark.asyncio
async def test_view_counts_failure_yields_zeros(db_session, hit_counter, make_event):
    event = await make_event()
    hit_counter.views = {f"/events/{event.id}": 5}
    hit_counter.fail = True

    views = await stats_service.get_view_counts(hit_counter, [event])
    assert views == {event.id: 0}


@pytest.mark.asyncio
async def test_enrich_empty_is_noop(db_session, hit_counter):
    assert await stats_service.enrich_events(db_session, hit_counter, []) == []
    assert hit_counter.queries == []


@pytest.mark.asyncio
async def test_confirmed_counts_default_to_zero(db_session, make_user, make_event, make_request):
    event = await make_event(participant_limit=3)
    empty = await make_event()
    await make_request(event, await make_user(), RequestStatus.CONFIRMED)
    await make_request(event, await make_user(), RequestStatus.PENDING)
    await make_request(event, await make_user(), RequestStatus.CANCELED)

    counts = await stats_service.get_confirmed_counts(db_session, [event.id, empty.id, 999])
    assert counts == {event.id: 1, empty.id: 0, 999: 0}


@pytest.mark.asyncio
async def test_availability_filter(client: AsyncClient, make_user, make_event, make_request):
    full = await make_event(participant_limit=1)
    await make_request(full, await make_user(), RequestStatus.CONFIRMED)
    unlimited = await make_event(participant_limit=0)

    response = await client.get("/events", params={"only_available": "true"})
    assert {e["id"] for e in response.json()} == {unlimited.id}

    response = await client.get("/events", params={"only_available": "false"})
    ids = {e["id"] for e in response.json()}
    assert ids == {full.id, unlimited.id}


@pytest.mark.asyncio
async def test_public_listing_records_hits(client: AsyncClient, make_event, hit_counter):
    published = await make_event()
    await make_event(state=EventState.PENDING)

    response = await client.get("/events")
    assert response.status_code == 200
    assert [e["id"] for e in response.json()] == [published.id]
    assert sorted(hit_counter.uris()) == sorted(["/events", f"/events/{published.id}"])


@pytest.mark.asyncio
async def test_public_listing_survives_stats_outage(client: AsyncClient, make_event, hit_counter):
    event = await make_event()
    hit_counter.fail = True

    response = await client.get("/events")
    assert response.status_code == 200
    assert response.json()[0]["id"] == event.id
    assert response.json()[0]["views"] == 0

    response = await client.get(f"/events/{event.id}")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_public_listing_filters(client: AsyncClient, db_session, make_event):
    from eventhub.models.category import Category

    sports = Category(name="Sports")
    db_session.add(sports)
    await db_session.commit()

    music = await make_event(annotation="Jazz quartet plays the classics live")
    match = await make_event(
        paid=True,
        annotation="Marathon through the old town streets",
        description="Registration opens at 7am at the STADIUM gates.",
        category_id=sports.id,
    )

    response = await client.get("/events", params={"text": "stadium"})
    assert [e["id"] for e in response.json()] == [match.id]

    response = await client.get("/events", params={"categories": [sports.id]})
    assert [e["id"] for e in response.json()] == [match.id]

    response = await client.get("/events", params={"paid": "false"})
    assert [e["id"] for e in response.json()] == [music.id]


@pytest.mark.asyncio
async def test_public_listing_date_range(client: AsyncClient, make_event):
    soon = await make_event(event_date=future(hours=48))
    await make_event(event_date=future(hours=24 * 60))

    params = {
        "range_start": future(hours=24).strftime("%Y-%m-%d %H:%M:%S"),
        "range_end": future(hours=72).strftime("%Y-%m-%d %H:%M:%S"),
    }
    response = await client.get("/events", params=params)
    assert [e["id"] for e in response.json()] == [soon.id]

    inverted = {"range_start": params["range_end"], "range_end": params["range_start"]}
    response = await client.get("/events", params=inverted)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_public_listing_sort_and_paginate_last(client: AsyncClient, make_event, hit_counter):
    """sort=VIEWS ranks the whole result before the page is cut."""
    late = await make_event(event_date=future(hours=24 * 10))
    early = await make_event(event_date=future(hours=24 * 3))
    middle = await make_event(event_date=future(hours=24 * 5))
    hit_counter.views = {f"/events/{late.id}": 1, f"/events/{early.id}": 3, f"/events/{middle.id}": 9}

    response = await client.get("/events", params={"sort": "VIEWS", "size": 2})
    assert [e["id"] for e in response.json()] == [middle.id, early.id]

    response = await client.get("/events", params={"sort": "VIEWS", "from": 2, "size": 2})
    assert [e["id"] for e in response.json()] == [late.id]

    response = await client.get("/events", params={"sort": "EVENT_DATE"})
    assert [e["id"] for e in response.json()] == [early.id, middle.id, late.id]

    response = await client.get("/events", params={"sort": "POPULARITY"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_sort_events_keeps_input_order_without_sort(make_event):
    first = await make_event()
    second = await make_event()
    first.views, second.views = 1, 5
    assert stats_service.sort_events([first, second], None) == [first, second]
    assert stats_service.sort_events([first, second], EventSort.VIEWS) == [second, first]


@pytest.mark.asyncio
async def test_stats_client_wire_format():
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        if request.url.path == "/hit":
            return httpx.Response(201)
        return httpx.Response(200, json=[{"app": "ewm-main-service", "uri": "/events/42", "hits": 7}])

    transport = httpx.MockTransport(handler)
    client = StatsClient(
        "http://stats",
        client=httpx.AsyncClient(transport=transport, base_url="http://stats"),
    )

    await client.record_hit("ewm-main-service", "/events/42", "10.0.0.1")
    start = datetime(2020, 1, 1, tzinfo=timezone.utc)
    end = datetime(2030, 1, 1, 12, 30, tzinfo=timezone.utc)
    stats = await client.query_hits(start, end, ["/events/42", "/events/43"], unique=True)
    await client.close()

    hit = json.loads(captured[0].content)
    assert hit["app"] == "ewm-main-service"
    assert hit["uri"] == "/events/42"
    assert hit["ip"] == "10.0.0.1"
    datetime.strptime(hit["timestamp"], "%Y-%m-%d %H:%M:%S")

    query = captured[1].url.params
    assert query["start"] == "2020-01-01 00:00:00"
    assert query["end"] == "2030-01-01 12:30:00"
    assert query["uris"] == "/events/42,/events/43"
    assert query["unique"] == "true"
    assert [(s.uri, s.hits) for s in stats] == [("/events/42", 7)]


@pytest.mark.asyncio
async def test_stats_client_degrades_on_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/hit":
            raise httpx.ConnectError("connection refused")
        return httpx.Response(500, text="boom")

    client = StatsClient(
        "http://stats",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://stats"),
    )

    await client.record_hit("ewm-main-service", "/events/1", "10.0.0.1")
    assert await client.query_hits(datetime.now(timezone.utc), datetime.now(timezone.utc), ["/events/1"]) == []
    await client.close()
