"""
Locust Load Test Suite

Targets an existing schedule whose seat map has been generated
(LOAD_SCHEDULE_ID, default 1).

Run scenarios:
  locust -f locustfile.py --tags contention   # Many shoppers, same seats
  locust -f locustfile.py --tags throughput   # Seat map reads
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from locust import HttpUser, task, between, tag, events

SCHEDULE_ID = int(os.environ.get("LOAD_SCHEDULE_ID", "1"))

# Shared state
SEAT_IDS: list[str] = []
HOT_SEATS: list[str] = []


def load_seat_ids(client):
    if SEAT_IDS:
        return
    resp = client.get(f"/api/v1/schedules/{SCHEDULE_ID}/seats", name="/api/v1/schedules/{id}/seats")
    if resp.status_code != 200:
        return
    for row in resp.json()["rows"]:
        for seat in row["seats"]:
            if seat["status"] == "AVAILABLE":
                SEAT_IDS.append(seat["seat_id"])
    HOT_SEATS.extend(SEAT_IDS[:10])


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Seat hold load test against schedule {SCHEDULE_ID}")
    print("=" * 60)


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - 100 shoppers -> the same 10 seats

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    After test, verify:
      GET /api/v1/schedules/{id}/consistency
    No seat may be held by two sessions; every 409 names the seats it lost.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        load_seat_ids(self.client)
        self.session_id = None

    @tag("contention")
    @task
    def grab_hot_seats(self):
        if not HOT_SEATS:
            return
        wanted = random.sample(HOT_SEATS, k=random.randint(1, 3))
        with self.client.post(
            "/api/v1/reservations/",
            json={"schedule_id": SCHEDULE_ID, "seat_ids": wanted},
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                self.session_id = resp.json()["session_id"]
                resp.success()
            elif resp.status_code == 409 and resp.json().get("details", {}).get("seat_ids"):
                resp.success()  # Expected: someone else holds them
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("contention")
    @task
    def let_go(self):
        if self.session_id:
            self.client.delete(
                f"/api/v1/reservations/{self.session_id}",
                name="/api/v1/reservations/{session_id}",
            )
            self.session_id = None


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - seat map polling

    Run: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s

    Every open seat picker polls the map every few seconds; compare
    requests/sec and P95/P99 latency with and without active holds.
    """
    wait_time = between(2, 10)

    @tag("throughput", "read")
    @task(10)
    def poll_seat_map(self):
        self.client.get(f"/api/v1/schedules/{SCHEDULE_ID}/seats", name="/api/v1/schedules/{id}/seats")

    @tag("throughput", "read")
    @task(2)
    def booking_window(self):
        self.client.get(
            f"/api/v1/schedules/{SCHEDULE_ID}/booking-window",
            name="/api/v1/schedules/{id}/booking-window",
        )

    @tag("throughput")
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

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_schedule(self):
        with self.client.post(
            "/api/v1/reservations/",
            json={"schedule_id": 999999, "seat_ids": ["A1"]},
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def unknown_seat(self):
        with self.client.post(
            "/api/v1/reservations/",
            json={"schedule_id": SCHEDULE_ID, "seat_ids": ["ZZ999"]},
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def empty_selection(self):
        with self.client.post(
            "/api/v1/reservations/",
            json={"schedule_id": SCHEDULE_ID, "seat_ids": []},
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def too_many_seats(self):
        with self.client.post(
            "/api/v1/reservations/",
            json={"schedule_id": SCHEDULE_ID, "seat_ids": [f"A{n}" for n in range(1, 40)]},
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def expired_session_checkout(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={
                "session_id": "no-such-session",
                "customer": {"name": "Load", "email": "load@example.com"},
                "payment_method_id": "pm_test",
            },
            catch_response=True,
        ) as resp:
            self._expect(resp, [410])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/reservations/",
            data="not json at all",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic shopper

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Browse the map, hold a few seats, sometimes change the selection,
    look at the price, then either let go or walk away (hold expires).
    """
    wait_time = between(1, 3)

    def on_start(self):
        load_seat_ids(self.client)
        self.session_id = None

    @task(50)
    def browse(self):
        headers = {"X-Reservation-Session": self.session_id} if self.session_id else {}
        self.client.get(
            f"/api/v1/schedules/{SCHEDULE_ID}/seats",
            headers=headers,
            name="/api/v1/schedules/{id}/seats",
        )

    @task(15)
    def hold(self):
        if not SEAT_IDS:
            return
        resp = self.client.post(
            "/api/v1/reservations/",
            json={
                "schedule_id": SCHEDULE_ID,
                "seat_ids": random.sample(SEAT_IDS, k=random.randint(1, 4)),
                "session_id": self.session_id,
            },
        )
        if resp.status_code == 201:
            self.session_id = resp.json()["session_id"]

    @task(5)
    def price(self):
        if self.session_id:
            self.client.get(
                f"/api/v1/reservations/{self.session_id}/pricing",
                name="/api/v1/reservations/{session_id}/pricing",
            )

    @task(3)
    def release(self):
        if self.session_id:
            self.client.delete(
                f"/api/v1/reservations/{self.session_id}",
                name="/api/v1/reservations/{session_id}",
            )
            self.session_id = None
