"""
Load Tests for the TWAP Oracle HTTP API

Run with: locust -f locustfile.py --headless -u 50 -r 10 --run-time 2m --host http://localhost:8080
"""

import random
from locust import HttpUser, task, between, events


class OracleReader(HttpUser):
    """Simulates a protocol reading TWAP and volatility."""

    wait_time = between(0.1, 0.5)

    @task(10)
    def get_twap(self):
        """TWAP over a random aligned window - most common operation."""
        period = 60 * random.randint(1, 10)
        with self.client.get(
            f"/twap?period={period}",
            catch_response=True,
            name="GET /twap"
        ) as response:
            # 409 only means the ring is still warming up
            if response.status_code in [200, 409]:
                response.success()
            else:
                response.failure(f"Failed: {response.status_code}")

    @task(4)
    def get_volatility(self):
        lookback = random.randint(2, 10)
        with self.client.get(
            f"/volatility?lookback={lookback}",
            catch_response=True,
            name="GET /volatility"
        ) as response:
            if response.status_code in [200, 409]:
                response.success()
            else:
                response.failure(f"Failed: {response.status_code}")

    @task(1)
    def get_state(self):
        with self.client.get("/state", catch_response=True, name="GET /state") as response:
            if response.status_code == 200:
                response.success()
            else:
                response.failure(f"Failed: {response.status_code}")


class PriceFeeder(HttpUser):
    """Pushes a slowly drifting price; the server clock stamps each submission."""

    wait_time = between(1, 3)

    def on_start(self):
        self.price = 1.0

    @task(5)
    def submit_price(self):
        self.price = max(0.0001, self.price * (1 + random.uniform(-0.01, 0.01)))
        with self.client.post(
            "/prices",
            json={"price": f"{self.price:.8f}"},
            catch_response=True,
            name="POST /prices"
        ) as response:
            if response.status_code == 200:
                response.success()
            elif response.status_code == 422:
                response.failure("Rejected by guard")
            else:
                response.failure(f"Failed: {response.status_code}")

    @task(1)
    def health_check(self):
        with self.client.get("/health", catch_response=True, name="GET /health") as response:
            if response.status_code == 200:
                response.success()
            else:
                response.failure(f"Oracle unhealthy: {response.status_code}")


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("=" * 60)
    print("TWAP Oracle Load Test")
    print("=" * 60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    print("=" * 60)
    print("Load Test Complete")
    print("=" * 60)
