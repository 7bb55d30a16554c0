from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

from b2b_commerce.errors import RemoteSyncError


class MockCommerceBackend:
    """
    In-memory stand-in for the remote commerce backend, same surface as
    HttpCommerceBackend.

    Failure switches for tests:
      - connected = False    -> validate_connection() is False, every call fails
      - fail_on = {"create_cart", ...} -> named calls raise RemoteSyncError
      - complete_error = {...} -> complete_cart returns a structured cart error
    """

    def __init__(self, regions: Optional[List[Dict[str, Any]]] = None):
        self.regions = regions if regions is not None else [
            {"id": "reg_eur", "currency_code": "eur"},
            {"id": "reg_usd", "currency_code": "usd"},
        ]
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.carts: Dict[str, Dict[str, Any]] = {}
        self.products: Dict[str, Dict[str, Any]] = {}
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.shipping_options: List[Dict[str, Any]] = [
            {"id": "so_standard", "name": "Standard"},
            {"id": "so_express", "name": "Express"},
        ]
        self.connected = True
        self.fail_on: Set[str] = set()
        self.complete_error: Optional[Dict[str, Any]] = None
        self.calls: List[str] = []

    def _enter(self, op: str):
        self.calls.append(op)
        if not self.connected:
            raise RemoteSyncError(f"{op}: backend unreachable")
        if op in self.fail_on:
            raise RemoteSyncError(f"{op}: simulated failure", status_code=500)

    # --- test helpers --------------------------------------------------

    def register_product(self, product_id: str, unit_price_cents: int, variant_id: Optional[str] = None) -> str:
        variant_id = variant_id or f"variant_{product_id}"
        self.products[product_id] = {
            "id": product_id,
            "variants": [{"id": variant_id, "prices": [{"amount": unit_price_cents, "currency_code": "usd"}]}],
        }
        return variant_id

    def _variant_price(self, variant_id: str) -> int:
        for p in self.products.values():
            for v in p["variants"]:
                if v["id"] == variant_id:
                    return v["prices"][0]["amount"]
        return 0

    def _cart_view(self, cart: Dict[str, Any]) -> Dict[str, Any]:
        for it in cart["items"]:
            it["total"] = it["unit_price"] * it["quantity"]
        cart["subtotal"] = sum(it["total"] for it in cart["items"])
        cart["total"] = cart["subtotal"]
        return dict(cart, items=[dict(it) for it in cart["items"]])

    def _cart(self, cart_id: str) -> Dict[str, Any]:
        cart = self.carts.get(cart_id)
        if cart is None:
            raise RemoteSyncError(f"cart {cart_id} not found", status_code=404, retryable=False)
        return cart

    # --- health --------------------------------------------------------

    def validate_connection(self) -> bool:
        self.calls.append("validate_connection")
        return self.connected and "validate_connection" not in self.fail_on

    # --- customers -----------------------------------------------------

    def find_customers_by_email(self, email: str) -> List[Dict[str, Any]]:
        self._enter("find_customers_by_email")
        return [dict(c) for c in self.customers.values() if c["email"].lower() == email.lower()]

    def get_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        self._enter("get_customer")
        c = self.customers.get(customer_id)
        return dict(c) if c else None

    def create_customer(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._enter("create_customer")
        cid = f"cus_{uuid4().hex[:12]}"
        self.customers[cid] = dict(payload, id=cid)
        return dict(self.customers[cid])

    def update_customer(self, customer_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._enter("update_customer")
        if customer_id not in self.customers:
            raise RemoteSyncError(f"customer {customer_id} not found", status_code=404, retryable=False)
        self.customers[customer_id].update(payload)
        return dict(self.customers[customer_id])

    def delete_customer(self, customer_id: str) -> None:
        self._enter("delete_customer")
        self.customers.pop(customer_id, None)

    # --- catalogue -----------------------------------------------------

    def list_regions(self) -> List[Dict[str, Any]]:
        self._enter("list_regions")
        return [dict(r) for r in self.regions]

    def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        self._enter("get_product")
        return self.products.get(product_id)

    # --- carts ---------------------------------------------------------

    def create_cart(self, region_id: str, customer_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None):
        self._enter("create_cart")
        region = next((r for r in self.regions if r["id"] == region_id), {"id": region_id, "currency_code": "usd"})
        cid = f"cart_{uuid4().hex[:12]}"
        self.carts[cid] = {
            "id": cid,
            "region_id": region_id,
            "region": dict(region),
            "customer_id": customer_id,
            "metadata": dict(metadata or {}),
            "items": [],
            "shipping_methods": [],
            "payment_sessions": [],
            "completed_at": None,
        }
        return self._cart_view(self.carts[cid])

    def get_cart(self, cart_id: str) -> Optional[Dict[str, Any]]:
        self._enter("get_cart")
        cart = self.carts.get(cart_id)
        return self._cart_view(cart) if cart else None

    def update_cart(self, cart_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._enter("update_cart")
        cart = self._cart(cart_id)
        cart.update(payload)
        return self._cart_view(cart)

    def add_line_item(self, cart_id: str, variant_id: str, quantity: int, metadata: Optional[Dict[str, Any]] = None):
        self._enter("add_line_item")
        cart = self._cart(cart_id)
        existing = next((it for it in cart["items"] if it["variant_id"] == variant_id), None)
        if existing:
            existing["quantity"] += quantity
        else:
            cart["items"].append(
                {
                    "id": f"item_{uuid4().hex[:12]}",
                    "variant_id": variant_id,
                    "quantity": quantity,
                    "unit_price": self._variant_price(variant_id),
                    "metadata": dict(metadata or {}),
                }
            )
        return self._cart_view(cart)

    def update_line_item(self, cart_id: str, line_id: str, quantity: int) -> Dict[str, Any]:
        self._enter("update_line_item")
        cart = self._cart(cart_id)
        item = next((it for it in cart["items"] if it["id"] == line_id), None)
        if item is None:
            raise RemoteSyncError(f"line item {line_id} not found", status_code=404, retryable=False)
        item["quantity"] = quantity
        return self._cart_view(cart)

    def delete_line_item(self, cart_id: str, line_id: str) -> Dict[str, Any]:
        self._enter("delete_line_item")
        cart = self._cart(cart_id)
        cart["items"] = [it for it in cart["items"] if it["id"] != line_id]
        return self._cart_view(cart)

    def list_shipping_options(self, cart_id: str) -> List[Dict[str, Any]]:
        self._enter("list_shipping_options")
        self._cart(cart_id)
        return [dict(o) for o in self.shipping_options]

    def add_shipping_method(self, cart_id: str, option_id: str) -> Dict[str, Any]:
        self._enter("add_shipping_method")
        cart = self._cart(cart_id)
        cart["shipping_methods"] = [{"shipping_option_id": option_id}]
        return self._cart_view(cart)

    def init_payment_sessions(self, cart_id: str) -> Dict[str, Any]:
        self._enter("init_payment_sessions")
        cart = self._cart(cart_id)
        cart["payment_sessions"] = [{"provider_id": "manual"}]
        return self._cart_view(cart)

    def complete_cart(self, cart_id: str) -> Dict[str, Any]:
        self._enter("complete_cart")
        cart = self._cart(cart_id)
        if self.complete_error:
            return {"type": "cart", "cart": self._cart_view(cart), "error": dict(self.complete_error)}
        if cart["completed_at"]:
            order = next(o for o in self.orders.values() if o["cart_id"] == cart_id)
            return {"type": "order", "order": dict(order)}
        view = self._cart_view(cart)
        oid = f"order_{uuid4().hex[:12]}"
        self.orders[oid] = {"id": oid, "cart_id": cart_id, "total": view["total"], "items": view["items"]}
        cart["completed_at"] = "now"
        return {"type": "order", "order": dict(self.orders[oid])}
