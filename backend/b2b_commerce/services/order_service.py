from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from b2b_commerce.config import settings
from b2b_commerce.errors import InventoryShortageError, NotFoundError, ValidationError
from b2b_commerce.models.order import ORDER_STATUSES, ORDER_TRANSITIONS, Order
from b2b_commerce.repositories.client_repo import ClientRepository
from b2b_commerce.repositories.order_repo import OrderRepository
from b2b_commerce.repositories.product_repo import ProductRepository
from b2b_commerce.services.access_service import MANAGER_ROLES, AccessContext, require_roles
from b2b_commerce.services.inventory_service import InventoryService
from b2b_commerce.utils.logging import get_logger
from b2b_commerce.utils.transactions import unit_of_work

log = get_logger(__name__)


class OrderService:
    def __init__(self, db: Session, ctx: AccessContext):
        self.db = db
        self.ctx = ctx
        self.orders = OrderRepository(db)
        self.clients = ClientRepository(db)
        self.products = ProductRepository(db)
        self.inventory = InventoryService(db)

    def list_orders(self, status: Optional[str] = None, client_id: Optional[int] = None) -> List[Order]:
        if status and status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}")
        return self.orders.list(self.ctx.organization_id, status=status, client_id=client_id)

    def get_order(self, order_id: int) -> Order:
        order = self.orders.get(self.ctx.organization_id, order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    def update_status(self, order_id: int, new_status: str) -> Order:
        """
        Move an order along its fulfilment state machine. Admin/manager only;
        the write is guarded on the status we validated against.
        """
        require_roles(self.ctx, *MANAGER_ROLES)
        order = self.get_order(order_id)
        current = order.status
        if new_status == current:
            return order
        if new_status not in ORDER_TRANSITIONS.get(current, ()):
            raise ValidationError(f"Cannot change order status from {current} to {new_status}")
        with unit_of_work(self.db):
            if self.orders.transition(self.ctx.organization_id, order.id, current, new_status) == 0:
                raise ValidationError("Order status changed concurrently, reload and retry")
        log.info("order %s %s -> %s by user=%s", order.id, current, new_status, self.ctx.user_id)
        return self.get_order(order_id)

    def create_order(self, client_id: int, items: Iterable[Tuple[int, int]]) -> Order:
        """
        Place an order directly from (product_id, quantity) pairs, without a
        cart. Prices are snapshotted from the catalogue; repeated products
        are merged. Order, lines and stock decrements commit together or not
        at all.
        """
        org = self.ctx.organization_id
        client = self.clients.get(org, client_id)
        if not client:
            raise NotFoundError("Client not found")

        wanted: Dict[int, int] = {}
        for product_id, qty in items:
            if qty <= 0:
                raise ValidationError("Each item must have product_id and valid quantity")
            wanted[product_id] = wanted.get(product_id, 0) + qty
        if not wanted:
            raise ValidationError("At least one item is required")

        with unit_of_work(self.db):
            products = self.products.get_many(org, wanted)
            for product_id in wanted:
                p = products.get(product_id)
                if p is None or not p.active:
                    raise ValidationError(f"Product {product_id} not found or not available")
            shortages = self.inventory.check_many(
                org, [(pid, qty, products[pid].name) for pid, qty in wanted.items()]
            )
            if shortages:
                raise InventoryShortageError(shortages)

            order = self.orders.create(
                organization_id=org,
                client_id=client.id,
                cart_id=None,
                created_by=self.ctx.user_id,
                customer_name=client.display_name,
                customer_email=client.contact_email,
                currency=client.preferred_currency or settings.DEFAULT_CURRENCY,
                total_cents=sum(products[pid].price_cents * qty for pid, qty in wanted.items()),
            )
            for pid, qty in wanted.items():
                p = products[pid]
                self.orders.add_line(
                    order,
                    product_id=p.id,
                    sku=p.sku,
                    name=p.name,
                    quantity=qty,
                    unit_price_cents=p.price_cents,
                    total_price_cents=p.price_cents * qty,
                )
            for pid, qty in wanted.items():
                self.inventory.decrement(org, pid, qty, name=products[pid].name)
            order_id = order.id

        log.info("direct order %s for client=%s by user=%s", order_id, client.id, self.ctx.user_id)
        return self.get_order(order_id)
