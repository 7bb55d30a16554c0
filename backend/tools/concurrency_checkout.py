"""
Fire concurrent requests at a running server to watch the cart guards work.

    checkout   N workers POST checkout for the same cart; exactly one should
               get 201, the rest 400 (or a replay with a shared Idempotency-Key)
    add        N workers add the same product to one cart; the line quantity
               should end at N * qty (or stop at the stock level)

Usage:
    python tools/concurrency_checkout.py checkout --cart 1 --user demo_member
    python tools/concurrency_checkout.py add --cart 1 --product 3 --workers 16
"""
import argparse
import concurrent.futures
import os
from collections import Counter

import requests

BASE = os.environ.get("B2B_BASE", "http://127.0.0.1:8000")
SUBDOMAIN = os.environ.get("B2B_SUBDOMAIN", "acme")


def _headers(user, idempotency_key=None):
    h = {"X-User-Id": user, "X-Organization-Subdomain": SUBDOMAIN}
    if idempotency_key:
        h["Idempotency-Key"] = idempotency_key
    return h


def checkout_task(i, cart_id, user, idempotency_key):
    try:
        r = requests.post(
            f"{BASE}/api/carts/{cart_id}/checkout", headers=_headers(user, idempotency_key), timeout=20
        )
        order = (r.json().get("order") or {}) if r.status_code == 201 else {}
        return (i, r.status_code, order.get("id") or r.json().get("error"))
    except requests.RequestException as e:
        return (i, "ERR", str(e))


def add_task(i, cart_id, product_id, qty, user):
    try:
        r = requests.post(
            f"{BASE}/api/carts/{cart_id}/items",
            json={"product_id": product_id, "quantity": qty},
            headers=_headers(user),
            timeout=10,
        )
        return (i, r.status_code, r.json().get("error"))
    except requests.RequestException as e:
        return (i, "ERR", str(e))


def run(workers, fn, *args):
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
        results = [f.result() for f in [ex.submit(fn, i, *args) for i in range(workers)]]
    for r in results:
        print(r)
    print("Status codes:", dict(Counter(r[1] for r in results)))
    return results


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrency check for cart mutations and checkout.")
    sub = parser.add_subparsers(dest="mode", required=True)

    c = sub.add_parser("checkout")
    c.add_argument("--cart", type=int, required=True)
    c.add_argument("--user", default="demo_member")
    c.add_argument("--workers", type=int, default=8)
    c.add_argument("--idempotency", default=None, help="share one Idempotency-Key across workers")

    a = sub.add_parser("add")
    a.add_argument("--cart", type=int, required=True)
    a.add_argument("--product", type=int, required=True)
    a.add_argument("--qty", type=int, default=1)
    a.add_argument("--user", default="demo_member")
    a.add_argument("--workers", type=int, default=8)

    args = parser.parse_args()

    if args.mode == "checkout":
        results = run(args.workers, checkout_task, args.cart, args.user, args.idempotency)
        print("Distinct orders:", {r[2] for r in results if r[1] == 201})
    else:
        run(args.workers, add_task, args.cart, args.product, args.qty, args.user)
        cart = requests.get(f"{BASE}/api/carts/{args.cart}", headers=_headers(args.user), timeout=10).json()
        print("Final cart:", {k: cart["cart"][k] for k in ("total_cents", "item_count")})
