#!/usr/bin/env python3
"""
Order Status E2E Smoke Tests (running order service)

Run:
  python -m order_service.app.seed      # prints the admin id
  ADMIN_ID=<id> python e2e_order_status.py

Optional env:
  ORDER_BASE=http://localhost:8001
"""

from __future__ import annotations

import os
import sys
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests


ORDER_BASE = os.getenv("ORDER_BASE", "http://localhost:8001")
ADMIN_ID = os.getenv("ADMIN_ID", "")

PRODUCTS_PATH = "/api/v1/products"
CHECKOUT_PATH = "/api/v1/checkout"
STATUS_PATH = "/api/v1/admin/orders/{order_id}/status"
ACTIVITIES_PATH = "/api/v1/admin/orders/{order_id}/activities"

INITIAL_INVENTORY = 10


@dataclass
class TestResult:
    name: str
    success: bool
    details: str = ""


def check(name: str, success: bool, details: str = "") -> TestResult:
    print(f"  {'PASS' if success else 'FAIL'}  {name}")
    return TestResult(name, success, "" if success else details)


# --- HTTP helpers ---

def http(method: str, path: str, **kwargs) -> requests.Response:
    kwargs.setdefault("timeout", 8)
    headers = kwargs.setdefault("headers", {})
    headers.setdefault("X-Admin-Id", ADMIN_ID)
    return requests.request(method, ORDER_BASE + path, **kwargs)


def wait_for_health(timeout: int = 30) -> bool:
    start = time.time()
    while time.time() - start < timeout:
        try:
            if http("GET", "/health").status_code == 200:
                return True
        except requests.exceptions.RequestException:
            pass
        time.sleep(1)
    print(f"order_service did not become healthy in {timeout} seconds.")
    return False


def create_product(tag: str) -> Dict[str, Any]:
    slug = f"e2e-{tag}-{uuid.uuid4().hex[:8]}"
    resp = http("POST", PRODUCTS_PATH, json={
        "name": f"E2E {tag}", "slug": slug, "price": 100.0, "inventory": INITIAL_INVENTORY,
    })
    resp.raise_for_status()
    return resp.json()


def inventory_of(product_id: str) -> Optional[int]:
    resp = http("GET", PRODUCTS_PATH)
    resp.raise_for_status()
    for product in resp.json():
        if product["id"] == product_id:
            return product["inventory"]
    return None


def checkout(items: List[Dict[str, Any]]) -> str:
    resp = http("POST", CHECKOUT_PATH, json={
        "buyerName": "E2E Buyer",
        "buyerEmail": "e2e@example.com",
        "address": "42 Integration Street",
        "items": items,
    })
    resp.raise_for_status()
    return resp.json()["orderId"]


def put_status(order_id: str, body: Dict[str, Any], idempotency_key: Optional[str] = None) -> requests.Response:
    headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
    return http("PUT", STATUS_PATH.format(order_id=order_id), json=body, headers=headers)


def expect(resp: requests.Response, code: int, name: str) -> TestResult:
    return check(f"{name} (HTTP {resp.status_code}, expected {code})", resp.status_code == code, resp.text)


# --- Scenarios ---

def scenario_lifecycle() -> List[TestResult]:
    print("\nPENDING -> PROCESSING -> SHIPPED -> DELIVERED")
    product = create_product("lifecycle")
    order_id = checkout([{"productId": product["id"], "quantity": 1}])

    results = [
        expect(put_status(order_id, {"status": "PROCESSING", "note": "picking"}), 200, "To PROCESSING"),
        expect(put_status(order_id, {"status": "SHIPPED", "trackingNumber": "TRK-1", "carrier": "DHL"}), 200, "To SHIPPED"),
        expect(put_status(order_id, {"status": "DELIVERED"}), 200, "To DELIVERED"),
        expect(put_status(order_id, {"status": "PROCESSING"}), 400, "DELIVERED is terminal"),
    ]

    resp = http("GET", ACTIVITIES_PATH.format(order_id=order_id))
    chain = [(a["fromStatus"], a["toStatus"]) for a in resp.json().get("activities", [])]
    expected = [("PENDING", "PROCESSING"), ("PROCESSING", "SHIPPED"), ("SHIPPED", "DELIVERED")]
    results.append(check("Audit trail chaining", chain == expected, str(chain)))
    return results


def scenario_cancel_restock() -> List[TestResult]:
    print("\nCancel and restock")
    product = create_product("restock")
    order_id = checkout([{"productId": product["id"], "quantity": 2}])
    before = inventory_of(product["id"])

    results = [expect(put_status(order_id, {"status": "CANCELLED"}), 400, "Cancel without reason")]
    results.append(expect(
        put_status(order_id, {"status": "CANCELLED", "cancellationReason": "customer request"}), 200, "Cancel"
    ))
    results.append(expect(
        put_status(order_id, {"status": "CANCELLED", "cancellationReason": "again"}), 400, "Second cancel rejected"
    ))

    after = inventory_of(product["id"])
    results.append(check("Inventory restocked once", before is not None and after == before + 2, f"{before} -> {after}"))
    return results


def scenario_idempotent_replay() -> List[TestResult]:
    print("\nIdempotent replay")
    product = create_product("idem")
    order_id = checkout([{"productId": product["id"], "quantity": 1}])
    key = f"e2e-{uuid.uuid4()}"
    body = {"status": "PROCESSING", "note": "replayed"}

    first = put_status(order_id, body, idempotency_key=key)
    second = put_status(order_id, body, idempotency_key=key)
    results = [expect(first, 200, "First request"), expect(second, 200, "Replay")]

    replayed = second.status_code == 200 and second.json().get("idempotent") is True
    results.append(check("Replay flagged idempotent", replayed, second.text))
    return results


def main():
    if not ADMIN_ID:
        print("ADMIN_ID is not set; run `python -m order_service.app.seed` to get one.")
        sys.exit(2)
    if not wait_for_health():
        sys.exit(1)

    results = scenario_lifecycle() + scenario_cancel_restock() + scenario_idempotent_replay()
    failed = [r for r in results if not r.success]
    for r in failed:
        print(f"\n{r.name}:\n    {r.details}")
    print(f"\n{len(results) - len(failed)}/{len(results)} checks passed")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
