"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double-booking
  locust -f locustfile.py --tags throughput   # Test slot cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
from datetime import date, datetime, time, timedelta, timezone

from locust import HttpUser, task, between, tag, events

# Shared state
RACE_TRAINER_ID = 9001
TRAINER_IDS = list(range(9100, 9110))
SERVICE_ID = None
RACE_SLOT = None
BOOKING_IDS = []


def next_monday() -> date:
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) % 7 + 7)


def at_utc(day: date, hour: int, minute: int = 0) -> str:
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc).isoformat()


def ensure_fixtures(client):
    """First user in creates the service and seeds trainer hours."""
    global SERVICE_ID
    if SERVICE_ID:
        return

    resp = client.post(
        "/api/v1/services/",
        json={"name": "Load Test Session", "duration_minutes": 60, "credits_required": "1"},
        name="[setup] services",
    )
    if resp.status_code == 201:
        SERVICE_ID = resp.json()["id"]

    for trainer_id in [RACE_TRAINER_ID, *TRAINER_IDS]:
        client.post(f"/api/v1/availability/{trainer_id}/rules/defaults", name="[setup] default rules")


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: pick the contested slot every concurrency user will race for."""
    global RACE_SLOT
    RACE_SLOT = at_utc(next_monday(), 10)
    print("\n" + "=" * 60)
    print(f"SETUP: trainer {RACE_TRAINER_ID} contested at {RACE_SLOT}")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 clients -> 1 trainer slot

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM bookings
      WHERE trainer_id = 9001 AND status IN ('soft-hold', 'confirmed', 'checked-in');
    Should be <= 1 per overlapping range
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        ensure_fixtures(self.client)
        self.client_id = random.randint(100000, 999999)
        self.client.post(f"/api/v1/credits/{self.client_id}/grant", json={"amount": "5"}, name="[setup] grant")

    @tag("concurrency")
    @task
    def book_contested_slot(self):
        """All clients fight for the same trainer hour."""
        if not SERVICE_ID:
            return

        with self.client.post(
            "/api/v1/bookings/",
            json={
                "trainer_id": RACE_TRAINER_ID,
                "client_id": self.client_id,
                "service_id": SERVICE_ID,
                "scheduled_at": RACE_SLOT,
            },
            name="/api/v1/bookings/ [contested]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: slot taken
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Slot listing cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        ensure_fixtures(self.client)

    @tag("throughput", "read")
    @task(10)
    def list_open_slots(self):
        """Hammer the cached endpoint."""
        trainer_id = random.choice(TRAINER_IDS)
        day = next_monday() + timedelta(days=random.randint(0, 4))
        self.client.get(
            f"/api/v1/availability/{trainer_id}/slots?date={day.isoformat()}&duration=60",
            name="/api/v1/availability/{id}/slots [cached]",
        )

    @tag("throughput", "read")
    @task(3)
    def resolve_week(self):
        trainer_id = random.choice(TRAINER_IDS)
        start = next_monday()
        self.client.get(
            f"/api/v1/availability/{trainer_id}/resolved"
            f"?start_date={start.isoformat()}&end_date={(start + timedelta(days=6)).isoformat()}",
            name="/api/v1/availability/{id}/resolved",
        )

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

    def on_start(self):
        ensure_fixtures(self.client)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_service(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"trainer_id": TRAINER_IDS[0], "client_id": 1, "service_id": 999999, "scheduled_at": RACE_SLOT},
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def outside_hours(self):
        """Sunday 03:00 is never inside the default hours."""
        sunday = next_monday() - timedelta(days=1)
        with self.client.post(
            "/api/v1/bookings/",
            json={"trainer_id": TRAINER_IDS[0], "client_id": 1, "service_id": SERVICE_ID or 1,
                  "scheduled_at": at_utc(sunday, 3)},
            catch_response=True,
        ) as resp:
            self._expect(resp, [402, 404, 409])

    @tag("edge")
    @task
    def past_time(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"trainer_id": TRAINER_IDS[0], "client_id": 1, "service_id": SERVICE_ID or 1,
                  "scheduled_at": at_utc(date.today() - timedelta(days=7), 10)},
            catch_response=True,
        ) as resp:
            self._expect(resp, [402, 404, 409])

    @tag("edge")
    @task
    def invalid_rule(self):
        """start >= end is rejected at write time."""
        with self.client.post(
            f"/api/v1/availability/{TRAINER_IDS[0]}/rules",
            json={"day_of_week": 1, "start_minute": 900, "end_minute": 600},
            catch_response=True,
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def complete_unknown_booking(self):
        with self.client.post("/api/v1/bookings/999999/complete", catch_response=True) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post(
            "/api/v1/bookings/",
            data="not json at all",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly slot browsing
      - Some bookings, confirmations and cancellations
    """
    wait_time = between(1, 3)

    def on_start(self):
        ensure_fixtures(self.client)
        self.client_id = random.randint(100000, 999999)
        self.client.post(f"/api/v1/credits/{self.client_id}/grant", json={"amount": "10"}, name="[setup] grant")

    @task(50)
    def browse_slots(self):
        trainer_id = random.choice(TRAINER_IDS)
        day = next_monday() + timedelta(days=random.randint(0, 4))
        resp = self.client.get(
            f"/api/v1/availability/{trainer_id}/slots?date={day.isoformat()}&duration=60",
            name="/api/v1/availability/{id}/slots",
        )
        if resp.status_code == 200 and resp.json()["slots"] and SERVICE_ID and random.random() < 0.2:
            self._book(trainer_id, random.choice(resp.json()["slots"]))

    def _book(self, trainer_id, slot):
        with self.client.post(
            "/api/v1/bookings/",
            json={"trainer_id": trainer_id, "client_id": self.client_id, "service_id": SERVICE_ID,
                  "scheduled_at": slot},
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                BOOKING_IDS.append(resp.json()["id"])
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Someone else took it between listing and booking

    @task(10)
    def confirm_booking(self):
        if BOOKING_IDS:
            with self.client.post(
                f"/api/v1/bookings/{random.choice(BOOKING_IDS)}/confirm",
                name="/api/v1/bookings/{id}/confirm",
                catch_response=True,
            ) as resp:
                if resp.status_code in (200, 409):
                    resp.success()

    @task(3)
    def cancel_booking(self):
        if BOOKING_IDS:
            booking_id = BOOKING_IDS.pop(random.randrange(len(BOOKING_IDS)))
            with self.client.post(
                f"/api/v1/bookings/{booking_id}/cancel",
                name="/api/v1/bookings/{id}/cancel",
                catch_response=True,
            ) as resp:
                if resp.status_code in (200, 409):
                    resp.success()
