from fastapi.testclient import TestClient

from b2b_commerce.main import app
from b2b_commerce.models.order import Order, OrderLine
from b2b_commerce.models.product import Product
from b2b_commerce.repositories.order_repo import OrderRepository
from conftest import BASE_URL, add_line, auth, new_cart


def place_order(api, seed, user="user_member"):
    cart_id = new_cart(api, seed, user=user)
    add_line(api, cart_id, seed.product_a, 1, user=user)
    res = api.post(f"/api/carts/{cart_id}/checkout", headers=auth(user))
    assert res.status_code == 201, res.text
    return res.json()["order"]["id"]


def set_status(api, order_id, status, user="user_manager"):
    return api.put(f"/api/orders/{order_id}", json={"status": status}, headers=auth(user))


def test_list_and_get_orders(api, seed):
    order_id = place_order(api, seed)
    listed = api.get("/api/orders", headers=auth("user_member")).json()["orders"]
    assert [o["id"] for o in listed] == [order_id]

    order = api.get(f"/api/orders/{order_id}", headers=auth("user_member")).json()["order"]
    assert order["lines"][0]["product"]["sku"] == "SKU-A"

    filtered = api.get("/api/orders", params={"status": "shipped"}, headers=auth("user_member"))
    assert filtered.json()["orders"] == []
    assert api.get("/api/orders", params={"status": "lost"}, headers=auth("user_member")).status_code == 400


def test_unknown_order_is_404(api, seed):
    res = api.get("/api/orders/999", headers=auth("user_member"))
    assert res.status_code == 404
    assert res.json()["error"] == "Order not found"


def test_manager_walks_order_through_fulfilment(api, seed):
    order_id = place_order(api, seed)
    for status in ("confirmed", "shipped", "delivered"):
        res = set_status(api, order_id, status)
        assert res.status_code == 200, res.text
        assert res.json()["order"]["status"] == status


def test_invalid_transition_is_rejected(api, seed):
    order_id = place_order(api, seed)
    res = set_status(api, order_id, "delivered")
    assert res.status_code == 400
    assert res.json()["error"] == "Cannot change order status from pending to delivered"


def test_cancelled_order_is_terminal(api, seed):
    order_id = place_order(api, seed)
    assert set_status(api, order_id, "cancelled").status_code == 200
    assert set_status(api, order_id, "confirmed").status_code == 400
    # same status is a no-op
    assert set_status(api, order_id, "cancelled").status_code == 200


def test_members_cannot_change_order_status(api, seed):
    order_id = place_order(api, seed)
    res = set_status(api, order_id, "confirmed", user="user_member")
    assert res.status_code == 403
    assert res.json()["error"] == "Insufficient permissions"


def test_unknown_status_value_is_400(api, seed):
    order_id = place_order(api, seed)
    assert set_status(api, order_id, "teleported").status_code == 400


def direct_order(api, seed, items, user="user_member", client_id=None):
    payload = {"client_id": client_id or seed.client_id, "items": items}
    return api.post("/api/orders", json=payload, headers=auth(user))


def stock_of(db, product_id):
    db.expire_all()
    return db.get(Product, product_id).stock


def test_direct_order_snapshots_prices_and_takes_stock(api, seed, db):
    res = direct_order(
        api,
        seed,
        [
            {"product_id": seed.product_a, "quantity": 2},
            {"product_id": seed.product_b, "quantity": 1},
            {"product_id": seed.product_a, "quantity": 1},
        ],
    )
    assert res.status_code == 201, res.text
    order = res.json()["order"]
    assert order["cart_id"] is None
    assert order["client_id"] == seed.client_id
    assert order["customer_name"] == "Northwind Traders"
    assert order["status"] == "pending"
    assert order["total_cents"] == 4500
    lines = sorted(order["lines"], key=lambda l: l["sku"])
    assert [(l["sku"], l["quantity"], l["unit_price_cents"]) for l in lines] == [
        ("SKU-A", 3, 1000),
        ("SKU-B", 1, 1500),
    ]
    assert stock_of(db, seed.product_a) == 7
    assert stock_of(db, seed.product_b) == 4

    # later price changes do not touch the placed order
    db.get(Product, seed.product_a).price_cents = 9999
    db.commit()
    again = api.get(f"/api/orders/{order['id']}", headers=auth("user_member")).json()["order"]
    assert again["total_cents"] == 4500


def test_direct_order_shortage_creates_nothing(api, seed, db):
    res = direct_order(
        api,
        seed,
        [{"product_id": seed.product_a, "quantity": 1}, {"product_id": seed.product_b, "quantity": 6}],
    )
    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "Inventory validation failed"
    assert body["details"] == ["Insufficient stock for Widget B. Available: 5, Requested: 6"]
    assert db.query(Order).count() == 0
    assert stock_of(db, seed.product_a) == 10
    assert stock_of(db, seed.product_b) == 5


def test_direct_order_rejects_foreign_or_unknown_products(api, seed, db):
    res = direct_order(api, seed, [{"product_id": seed.other_product, "quantity": 1}])
    assert res.status_code == 400
    assert res.json()["error"] == f"Product {seed.other_product} not found or not available"

    assert direct_order(api, seed, [{"product_id": 999, "quantity": 1}]).status_code == 400
    assert direct_order(api, seed, [], client_id=seed.client_id).status_code == 400
    assert direct_order(api, seed, [{"product_id": seed.product_a, "quantity": 0}]).status_code == 400
    assert db.query(Order).count() == 0


def test_direct_order_for_unknown_client_is_404(api, seed):
    res = direct_order(api, seed, [{"product_id": seed.product_a, "quantity": 1}], client_id=seed.other_client_id)
    assert res.status_code == 404
    assert res.json()["error"] == "Client not found"


def test_direct_order_line_failure_rolls_back_order_and_stock(seed, db, monkeypatch):
    api = TestClient(app, base_url=BASE_URL, raise_server_exceptions=False)
    real_add_line = OrderRepository.add_line
    calls = []

    def add_line_failing_second(self, order, **kwargs):
        calls.append(kwargs["product_id"])
        if len(calls) == 2:
            raise RuntimeError("connection lost")
        return real_add_line(self, order, **kwargs)

    monkeypatch.setattr(OrderRepository, "add_line", add_line_failing_second)

    res = direct_order(
        api,
        seed,
        [{"product_id": seed.product_a, "quantity": 2}, {"product_id": seed.product_b, "quantity": 1}],
    )
    assert res.status_code == 500
    assert res.json() == {"error": "Internal server error"}
    assert len(calls) == 2

    db.expire_all()
    assert db.query(Order).count() == 0
    assert db.query(OrderLine).count() == 0
    assert stock_of(db, seed.product_a) == 10
    assert stock_of(db, seed.product_b) == 5
