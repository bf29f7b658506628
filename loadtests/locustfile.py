"""Orderstream load test: concurrent checkouts against scarce stock.

Many simulated customers try to buy the same product at once. A correct
engine lets orders through until stock runs out and answers every later
attempt with ``insufficient_stock``; it never sells more than it had.

Seed a product in the catalog first and pass its id:

    LOADTEST_PRODUCT_ID=<id> locust -f loadtests/locustfile.py --headless \
        -u 50 -r 10 -t 60s --host http://localhost:8000
"""

import logging
import os
import random
import time
import uuid

from locust import HttpUser, between, events, task

from loadtests.helpers.response import error_kind, extract_error_detail

logger = logging.getLogger("loadtest")

PRODUCT_ID = os.environ.get("LOADTEST_PRODUCT_ID", "")

_outcomes = {"placed": 0, "insufficient_stock": 0, "cancelled": 0}


def _address():
    return {
        "name": "Load Tester",
        "line1": f"{random.randint(1, 999)} Test Street",
        "city": "Bengaluru",
        "state": "KA",
        "postal_code": "560001",
    }


class CheckoutUser(HttpUser):
    """Places single-unit orders and cancels some of them to put stock back."""

    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.customer_id = f"load-{uuid.uuid4().hex[:10]}"
        self.headers = {"X-Actor-Id": self.customer_id, "X-Actor-Role": "CUSTOMER"}
        self.open_orders = []

    @task(5)
    def place_order(self):
        payload = {
            "items": [{"product_id": PRODUCT_ID, "quantity": 1}],
            "shipping_address": _address(),
            "payment_method": "COD",
        }
        with self.client.post(
            "/orders", json=payload, headers=self.headers, catch_response=True, name="POST /orders"
        ) as resp:
            if resp.status_code == 201:
                _outcomes["placed"] += 1
                self.open_orders.append(resp.json()["order_id"])
            elif error_kind(resp) == "insufficient_stock":
                _outcomes["insufficient_stock"] += 1
                resp.success()
            else:
                resp.failure(f"Checkout failed: {resp.status_code}: {extract_error_detail(resp)}")

    @task(1)
    def cancel_order(self):
        if not self.open_orders:
            return
        order_id = self.open_orders.pop(random.randrange(len(self.open_orders)))
        with self.client.put(
            f"/orders/{order_id}/cancel",
            json={"reason": "load test"},
            headers=self.headers,
            catch_response=True,
            name="PUT /orders/{id}/cancel",
        ) as resp:
            if resp.status_code == 200:
                _outcomes["cancelled"] += 1
            else:
                resp.failure(f"Cancel failed: {resp.status_code}: {extract_error_detail(resp)}")


@events.request.add_listener
def on_request(request_type, name, response, exception, **_kw):
    if exception:
        logger.error("[EXCEPTION] %s %s: %s", request_type, name, exception)
    elif response is not None and response.status_code >= 400 and error_kind(response) != "insufficient_stock":
        logger.error("[%s] %s %s: %s", response.status_code, request_type, name, extract_error_detail(response))


@events.test_start.add_listener
def on_test_start(environment, **_kwargs):
    if not PRODUCT_ID:
        logger.error("LOADTEST_PRODUCT_ID is not set; every checkout will fail with not_found")
    print(f"\n[LOADTEST] Started at {time.strftime('%H:%M:%S')} against {environment.host}")


@events.test_stop.add_listener
def on_test_stop(environment, **_kwargs):
    print(
        f"\n[LOADTEST] placed={_outcomes['placed']} "
        f"rejected_insufficient_stock={_outcomes['insufficient_stock']} "
        f"cancelled={_outcomes['cancelled']}"
    )
