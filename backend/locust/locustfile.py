"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double selling
  locust -f locustfile.py --tags throughput   # Test cache and seat maps
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

Admin credentials for setup come from ADMIN_EMAIL / ADMIN_PASSWORD.
"""

import os
import random
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@teatri.al")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "change-me")

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None
CONTESTED_SEATS = ["C-1", "C-2", "C-3", "C-4", "C-5", "C-6", "C-7", "C-8", "C-9", "C-10"]
FRONT_ROWS = ["A", "B", "C", "D", "E"]


def random_email():
    return f"load_{random.randint(10000, 99999)}@test.com"


def order_payload(event_id, seat_ids):
    return {
        "event_id": event_id,
        "seat_ids": seat_ids,
        "email": random_email(),
        "full_name": "Load Test",
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print("SETUP: Creating concurrency test event...")
    print("="*60)


def admin_headers(client):
    resp = client.post("/api/v1/admin/login", json={
        "email": ADMIN_EMAIL,
        "password": ADMIN_PASSWORD,
    })
    if resp.status_code != 200:
        return {}
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> the same 10 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT seat_id, COUNT(*) FROM seat_locks
      WHERE event_id = X AND status IN ('HELD', 'SOLD') GROUP BY seat_id;
    Every count should be 1
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        if CONCURRENCY_EVENT_ID:
            return
        headers = admin_headers(self.client)
        if not headers:
            return

        future = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
        resp = self.client.post("/api/v1/admin/events",
            json={
                "title": "Concurrency Test Event",
                "description": "Row C only",
                "start_date": future,
                "location": "Test",
            },
            headers=headers
        )
        if resp.status_code == 201:
            event_id = resp.json()["id"]
            self.client.post(f"/api/v1/admin/events/{event_id}/rules",
                json={"name": "Row C", "rows": ["C"], "price": 1000, "priority": 10},
                headers=headers
            )
            globals()["CONCURRENCY_EVENT_ID"] = event_id
            print(f"\n✓ Created event {event_id} selling row C\n")

    @tag("concurrency")
    @task
    def hold_contested_seats(self):
        """All users fight for the same seats, one or two at a time."""
        if not CONCURRENCY_EVENT_ID:
            return

        seats = random.sample(CONTESTED_SEATS, random.choice([1, 2]))
        with self.client.post("/api/v1/orders",
            json=order_payload(CONCURRENCY_EVENT_ID, seats),
            name="/api/v1/orders [contested]",
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: seats taken
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness and seat map cost

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        """Hammer the cached endpoint."""
        page = random.randint(1, 5)
        resp = self.client.get(f"/api/v1/events?page={page}&page_size=20",
            name="/api/v1/events [cached]")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @tag("throughput", "read")
    @task(5)
    def get_seat_map(self):
        """Seat maps are never cached: pricing is resolved per request."""
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            self.client.get(f"/api/v1/events/{event_id}/seats",
                name="/api/v1/events/{id}/seats")

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            self.client.get(f"/api/v1/events/{event_id}",
                name="/api/v1/events/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        with self.client.post("/api/v1/orders",
            json=order_payload(999999, ["A-1"]),
            catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def unknown_seat(self):
        event_id = CONCURRENCY_EVENT_ID or 1
        with self.client.post("/api/v1/orders",
            json=order_payload(event_id, ["Nowhere-0"]),
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def no_seats(self):
        with self.client.post("/api/v1/orders",
            json=order_payload(1, []),
            catch_response=True
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def too_many_seats(self):
        seats = [f"B-{n}" for n in range(1, 30)]
        with self.client.post("/api/v1/orders",
            json=order_payload(1, seats),
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/orders",
            data="not json at all",
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def forged_payment_notification(self):
        with self.client.post("/api/v1/payments/2checkout/notify",
            data={"message_type": "ORDER_CREATED", "merchant_order_id": "1", "key": "0" * 32},
            catch_response=True
        ) as resp:
            self._expect(resp, [403, 503])

    @tag("edge")
    @task
    def order_without_token(self):
        with self.client.get("/api/v1/orders/1",
            catch_response=True
        ) as resp:
            self._expect(resp, [403])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing listings and seat maps
      - Some checkouts on random front-row seats
    """
    wait_time = between(1, 3)

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events?page=1&page_size=20")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_seat_map(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}/seats",
                name="/api/v1/events/{id}/seats")

    @task(10)
    def checkout(self):
        if not EVENT_IDS:
            return
        seat = f"{random.choice(FRONT_ROWS)}-{random.randint(1, 20)}"
        with self.client.post("/api/v1/orders",
            json=order_payload(random.choice(EVENT_IDS), [seat]),
            name="/api/v1/orders",
            catch_response=True
        ) as resp:
            if resp.status_code in [201, 400, 409]:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")
