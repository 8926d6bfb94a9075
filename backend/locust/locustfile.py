"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overselling a small event
  locust -f locustfile.py --tags browse       # Test public listing + hit recording
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
import string
from locust import HttpUser, task, between, tag, events
from datetime import datetime, timezone, timedelta

CONCURRENCY_LIMIT = 10

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None


def random_email():
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=10))
    return f"load_{suffix}@test.com"


def create_user(client):
    resp = client.post("/admin/users", json={"name": "Load " + random_email()[:8], "email": random_email()})
    return resp.json()["id"] if resp.status_code == 201 else None


def event_payload(participant_limit, request_moderation=False):
    future = (datetime.now(timezone.utc) + timedelta(days=random.randint(3, 90))).isoformat()
    return {
        "title": f"Load event {random.randint(1, 10000)}",
        "annotation": "An event created by the load test suite",
        "description": "Generated event used to exercise the admission path",
        "category": 1,
        "event_date": future,
        "location": {"lat": 55.75, "lon": 37.61},
        "paid": False,
        "participant_limit": participant_limit,
        "request_moderation": request_moderation,
    }


def publish_event(client, initiator_id, participant_limit):
    """Create an event as `initiator_id` and publish it through the admin API."""
    client.post("/admin/categories", json={"name": "load-tests"})
    resp = client.post(f"/users/{initiator_id}/events", json=event_payload(participant_limit))
    if resp.status_code != 201:
        return None
    event_id = resp.json()["id"]
    client.patch(f"/admin/events/{event_id}", json={"state_action": "PUBLISH_EVENT"})
    return event_id


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"SETUP: Concurrency event will be created with limit {CONCURRENCY_LIMIT}")
    print("="*60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 slots

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM participation_requests
      WHERE event_id = X AND status = 'CONFIRMED';
    Should be <= 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.user_id = create_user(self.client)

        if self.user_id and not CONCURRENCY_EVENT_ID:
            initiator_id = create_user(self.client)
            event_id = publish_event(self.client, initiator_id, CONCURRENCY_LIMIT)
            if event_id:
                globals()["CONCURRENCY_EVENT_ID"] = event_id
                print(f"\nCreated event {event_id} with {CONCURRENCY_LIMIT} slots\n")

    @tag("concurrency")
    @task
    def register_for_small_event(self):
        """All users fight for the same 10 slots."""
        if not CONCURRENCY_EVENT_ID or not self.user_id:
            return

        with self.client.post(
            f"/users/{self.user_id}/requests?event_id={CONCURRENCY_EVENT_ID}",
            name="/users/{id}/requests",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: full, or already registered
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class BrowsingUser(HttpUser):
    """
    TEST 2: Public browsing

    Run: locust -f locustfile.py --tags browse -u 100 -r 20 --run-time 60s

    Every call records hits with the stats server, so compare latency with
    the stats server up and down: a dead stats server must not fail reads.
    """
    wait_time = between(0.1, 0.5)

    @tag("browse")
    @task(10)
    def list_events(self):
        sort = random.choice(["EVENT_DATE", "VIEWS"])
        resp = self.client.get(f"/events?sort={sort}&from=0&size=20", name="/events")
        if resp.status_code == 200:
            for event in resp.json():
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @tag("browse")
    @task(5)
    def list_available_events(self):
        self.client.get("/events?only_available=true&size=20", name="/events [available]")

    @tag("browse")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            self.client.get(f"/events/{random.choice(EVENT_IDS)}", name="/events/{id}")

    @tag("browse")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.user_id = create_user(self.client) or 1

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post(
            f"/users/{self.user_id}/requests?event_id=999999",
            name="/users/{id}/requests [unknown event]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def negative_limit(self):
        with self.client.post(
            f"/users/{self.user_id}/events",
            json=event_payload(-5),
            name="/users/{id}/events [negative limit]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_state_action(self):
        with self.client.patch(
            "/admin/events/1",
            json={"state_action": "PUBLISH_EVERYTHING"},
            name="/admin/events/{id} [bad action]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def inverted_range(self):
        with self.client.get(
            "/events?range_start=2030-01-02 00:00:00&range_end=2030-01-01 00:00:00",
            name="/events [inverted range]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            f"/users/{self.user_id}/events",
            data="not json at all",
            headers={"Content-Type": "application/json"},
            name="/users/{id}/events [malformed]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")
