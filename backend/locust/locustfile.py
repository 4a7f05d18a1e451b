"""
Locust Load Test Suite

Start the API with a seeded competition first:
  DEMO_COMPETITION_ID=load-test DEMO_COMPETITION_TICKETS=100 DEMO_COMPETITION_ANSWER=0 \
    uvicorn prize_reservations.main:app

Run scenarios:
  locust -f locustfile.py --tags contention   # Many buyers, few tickets
  locust -f locustfile.py --tags checkout     # Reserve -> answer -> checkout
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
import uuid

from locust import HttpUser, between, events, tag, task

COMPETITION_ID = os.getenv("DEMO_COMPETITION_ID", "load-test")
TOTAL_TICKETS = int(os.getenv("DEMO_COMPETITION_TICKETS", "100"))
CORRECT_ANSWER = int(os.getenv("DEMO_COMPETITION_ANSWER", "0"))


def new_user_headers():
    return {"X-User-Id": f"load-{uuid.uuid4().hex[:12]}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Competition {COMPETITION_ID}: {TOTAL_TICKETS} tickets")
    print("=" * 60)


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - many buyers race for a handful of numbers

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    After the run, every ticket number is held by at most one user:
      redis-cli --scan --pattern 'ticket-lock:load-test:*' | wc -l  <= 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = new_user_headers()

    @tag("contention")
    @task
    def reserve_hot_numbers(self):
        numbers = random.sample(range(1, 11), k=random.randint(1, 3))
        with self.client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMPETITION_ID, "ticketNumbers": numbers},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409, 429):
                resp.success()  # 409: another buyer holds one; 429: per-user limit
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("contention")
    @task
    def release(self):
        self.client.post(
            "/api/v1/tickets/release",
            json={"competitionId": COMPETITION_ID},
            headers=self.headers,
        )


class CheckoutUser(HttpUser):
    """
    TEST 2: Full checkout flow

    Run: locust -f locustfile.py --tags checkout -u 50 -r 10 --run-time 60s
    """
    wait_time = between(0.5, 2)

    def on_start(self):
        self.headers = new_user_headers()

    @tag("checkout")
    @task
    def reserve_answer_checkout(self):
        resp = self.client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMPETITION_ID, "quantity": random.randint(1, 3)},
            headers=self.headers,
        )
        if resp.status_code != 200:
            return
        numbers = resp.json()["ticketNumbers"]

        self.client.post(
            "/api/v1/qcm/validate",
            json={"competitionId": COMPETITION_ID, "answer": CORRECT_ANSWER, "ticketNumbers": numbers},
            headers=self.headers,
        )
        self.client.post(
            "/api/v1/checkout/session",
            json={"competitionId": COMPETITION_ID, "ticketNumbers": numbers},
            headers=self.headers,
        )
        self.client.post(
            "/api/v1/tickets/release",
            json={"competitionId": COMPETITION_ID},
            headers=self.headers,
        )

    @tag("checkout", "read")
    @task(3)
    def ticket_status(self):
        self.client.post(
            "/api/v1/tickets/status",
            json={"competitionId": COMPETITION_ID},
            headers=self.headers,
        )

    @tag("checkout")
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
        self.headers = new_user_headers()

    def expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_competition(self):
        with self.client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": "does-not-exist", "quantity": 1},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self.expect(resp, (404, 429))

    @tag("edge")
    @task
    def zero_quantity(self):
        with self.client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMPETITION_ID, "quantity": 0},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self.expect(resp, (400, 429))

    @tag("edge")
    @task
    def duplicate_numbers(self):
        with self.client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMPETITION_ID, "ticketNumbers": [1, 1]},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self.expect(resp, (400, 429))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/tickets/reserve",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self.expect(resp, (400, 429))

    @tag("edge")
    @task
    def missing_user(self):
        with self.client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMPETITION_ID, "quantity": 1},
            catch_response=True,
        ) as resp:
            self.expect(resp, (401, 429))
