"""
shopledger Load Testing with Locust

Run with:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001 \
           --users 10 --spawn-rate 2 --run-time 60s --headless

Environment:
    LOAD_SHOP_ID     shop to drive (default 1, create with `flask shops create`)
    LOAD_PRODUCT_IDS comma-separated product ids to sell (default 1)

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1%

Expected rejections (insufficient stock, already voided) are not errors:
they are exactly what concurrent cashiers should see.
"""

import os
import time
import random
from typing import Dict, List

from locust import HttpUser, task, between, events


# =============================================================================
# CONFIGURATION
# =============================================================================

SHOP_ID = int(os.environ.get("LOAD_SHOP_ID", "1"))
PRODUCT_IDS = [int(p) for p in os.environ.get("LOAD_PRODUCT_IDS", "1").split(",") if p.strip()]
RECENT_SALES = 50


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Collect and report metrics."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}

    def record(self, name: str, response_time: float, success: bool):
        if name not in self.request_counts:
            self.request_counts[name] = 0
            self.error_counts[name] = 0
            self.response_times[name] = []

        self.request_counts[name] += 1
        if not success:
            self.error_counts[name] += 1
        self.response_times[name].append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name in self.request_counts:
            times = sorted(self.response_times[name])
            count = len(times)
            if count == 0:
                continue

            p95_idx = int(count * 0.95)
            summary[name] = {
                "count": self.request_counts[name],
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / self.request_counts[name] * 100,
                "avg_ms": sum(times) / count,
                "p95_ms": times[p95_idx] if p95_idx < count else times[-1],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class ShopUser(HttpUser):
    """Base user bound to one shop via the identity headers."""
    wait_time = between(0.5, 2)
    abstract = True

    role: str = "CASHIER"

    def on_start(self):
        self.user_id = random.randint(1, 50)
        self.created_sales: List[int] = []

    def remember_sale(self, sale_id: int):
        self.created_sales.append(sale_id)
        # Only the most recent sales are ever picked
        del self.created_sales[:-RECENT_SALES]

    def get_headers(self) -> Dict:
        return {
            "Content-Type": "application/json",
            "X-Shop-Id": str(SHOP_ID),
            "X-User-Id": str(self.user_id),
            "X-User-Role": self.role,
        }


class BrowsingUser(ShopUser):
    """
    User that primarily reads.
    Simulates a cashier checking stock and looking up receipts.
    """
    weight = 3

    @task(5)
    def list_products(self):
        start = time.time()
        response = self.client.get("/api/products", headers=self.get_headers(), name="products/list")
        metrics.record("products/list", (time.time() - start) * 1000, response.status_code == 200)

    @task(3)
    def stock_alerts(self):
        start = time.time()
        response = self.client.get("/api/stock/alerts", headers=self.get_headers(), name="stock/alerts")
        metrics.record("stock/alerts", (time.time() - start) * 1000, response.status_code == 200)

    @task(2)
    def list_movements(self):
        start = time.time()
        response = self.client.get(
            "/api/stock/movements",
            params={"limit": 20},
            headers=self.get_headers(),
            name="stock/movements",
        )
        metrics.record("stock/movements", (time.time() - start) * 1000, response.status_code == 200)

    @task(1)
    def health_check(self):
        start = time.time()
        response = self.client.get("/health", name="system/health")
        metrics.record("system/health", (time.time() - start) * 1000, response.status_code == 200)


class SalesUser(ShopUser):
    """
    User that rings up sales against a small set of products, so carts
    contend for the same stock rows.
    """
    weight = 3

    @task(6)
    def create_sale(self):
        items = [
            {"product_id": random.choice(PRODUCT_IDS), "quantity": random.randint(1, 3)}
            for _ in range(random.randint(1, 3))
        ]
        start = time.time()
        response = self.client.post(
            "/api/sales",
            json={
                "items": items,
                "payment_method": random.choice(["CASH", "MOMO", "CARD"]),
                "amount_paid_cents": 1_000_000,
            },
            headers=self.get_headers(),
            name="sales/create",
        )
        # 400 = insufficient stock; 503 = conflict retries exhausted (counted as error)
        metrics.record("sales/create", (time.time() - start) * 1000, response.status_code in (201, 400))

        if response.status_code == 201:
            self.remember_sale(response.json()["sale"]["id"])

    @task(2)
    def get_sale(self):
        if not self.created_sales:
            return
        sale_id = random.choice(self.created_sales[-10:])
        start = time.time()
        response = self.client.get(f"/api/sales/{sale_id}", headers=self.get_headers(), name="sales/get")
        metrics.record("sales/get", (time.time() - start) * 1000, response.status_code == 200)

    @task(1)
    def daily_summary(self):
        start = time.time()
        response = self.client.get("/api/sales/summary/daily", headers=self.get_headers(), name="sales/summary")
        metrics.record("sales/summary", (time.time() - start) * 1000, response.status_code == 200)


class ManagerUser(ShopUser):
    """
    Manager voiding recent sales and restocking.
    Double voids of the same sale are expected to be rejected with 409.
    """
    weight = 1
    role = "MANAGER"

    @task(2)
    def void_recent_sale(self):
        # Managers void what the cashiers rang up, so pull recent sales first
        start = time.time()
        response = self.client.get(
            "/api/sales",
            params={"status": "COMPLETED", "limit": 10},
            headers=self.get_headers(),
            name="sales/list",
        )
        metrics.record("sales/list", (time.time() - start) * 1000, response.status_code == 200)
        if response.status_code != 200 or not response.json()["sales"]:
            return
        sale_id = random.choice(response.json()["sales"])["id"]
        start = time.time()
        response = self.client.post(
            f"/api/sales/{sale_id}/void",
            json={"reason": "Load test void"},
            headers=self.get_headers(),
            name="sales/void",
        )
        metrics.record("sales/void", (time.time() - start) * 1000, response.status_code in (200, 409))

    @task(3)
    def receive_stock(self):
        start = time.time()
        response = self.client.post(
            "/api/stock/receive",
            json={
                "items": [{"product_id": random.choice(PRODUCT_IDS), "quantity": random.randint(5, 20)}],
                "reference": "LOAD-TEST",
            },
            headers=self.get_headers(),
            name="stock/receive",
        )
        metrics.record("stock/receive", (time.time() - start) * 1000, response.status_code == 201)

    @task(1)
    def reconcile(self):
        start = time.time()
        response = self.client.get("/api/stock/reconcile", headers=self.get_headers(), name="stock/reconcile")
        ok = response.status_code == 200 and response.json().get("drifted") == 0
        metrics.record("stock/reconcile", (time.time() - start) * 1000, ok)


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)

    summary = metrics.get_summary()

    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    total_requests = 0
    total_errors = 0
    all_pass = True

    for name, stats in sorted(summary.items()):
        total_requests += stats["count"]
        total_errors += stats["errors"]

        write = any(op in name for op in ("create", "void", "receive"))
        p95_threshold = 1000 if write else 500
        passed = stats["p95_ms"] < p95_threshold and stats["error_rate"] < 1

        status = "PASS" if passed else "FAIL"
        if not passed:
            all_pass = False

        print(f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% {stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{status}]")

    print("-" * 80)
    print(f"{'TOTAL':<30} {total_requests:>8} {total_errors:>8} {total_errors/max(total_requests,1)*100:>7.2f}%")
    print("=" * 80)

    if all_pass:
        print("\n[PASS] All endpoints within thresholds")
    else:
        print("\n[FAIL] Some endpoints exceeded thresholds")
        print("  - Reads: P95 < 500ms, Error rate < 1%")
        print("  - Writes (create/void/receive): P95 < 1000ms, Error rate < 1%")

    print("=" * 80)
