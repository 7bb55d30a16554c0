import json
import sqlite3
import sys

DB = sys.argv[1] if len(sys.argv) > 1 else "dev.db"
CART = sys.argv[2] if len(sys.argv) > 2 else None

conn = sqlite3.connect(DB)
cur = conn.cursor()

print("=== Idempotency Records ===")
cur.execute(
    "SELECT id, key, status, cart_id, order_id, response_body, last_error, updated_at FROM idempotency_records ORDER BY created_at DESC LIMIT 20"
)
for r in cur.fetchall():
    remote = None
    if isinstance(r[5], str):
        try:
            remote = json.loads(r[5]).get("remote_sync")
        except ValueError:
            pass
    print(
        {
            "id": r[0],
            "key": r[1],
            "status": r[2],
            "cart_id": r[3],
            "order_id": r[4],
            "remote_sync": remote,
            "last_error": r[6],
            "updated_at": r[7],
        }
    )

print("\n=== Recent Orders ===")
cur.execute(
    "SELECT id, order_number, cart_id, status, total_cents, remote_order_id, created_at FROM orders ORDER BY created_at DESC LIMIT 20"
)
for r in cur.fetchall():
    print(r)

print("\n=== Carts whose totals disagree with their lines ===")
cur.execute(
    """
    SELECT c.id, c.status, c.total_cents, c.item_count,
           COALESCE(SUM(i.total_price_cents), 0), COALESCE(SUM(i.quantity), 0), c.remote_cart_id
    FROM carts c LEFT JOIN cart_items i ON i.cart_id = c.id
    GROUP BY c.id
    HAVING c.total_cents != COALESCE(SUM(i.total_price_cents), 0)
        OR c.item_count != COALESCE(SUM(i.quantity), 0)
    """
)
for r in cur.fetchall():
    # mirrored carts may legitimately carry remote totals
    print(r)

if CART:
    print(f"\n=== Lines for cart={CART} ===")
    cur.execute(
        "SELECT id, product_id, product_sku, quantity, unit_price_cents, total_price_cents, remote_line_id FROM cart_items WHERE cart_id=? ORDER BY id",
        (CART,),
    )
    for r in cur.fetchall():
        print(r)

print("\n=== Negative stock (should be empty) ===")
cur.execute("SELECT id, sku, stock FROM products WHERE stock < 0")
for r in cur.fetchall():
    print(r)

conn.close()
