from typing import List, Optional
from uuid import uuid4

from sqlalchemy import func, update
from sqlalchemy.orm import Session, selectinload

from b2b_commerce.models.order import Order, OrderLine


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def _gen_order_number(self) -> str:
        return f"ORD-{uuid4().hex[:10].upper()}"

    def get(self, organization_id: int, order_id: int) -> Optional[Order]:
        return (
            self.db.query(Order)
            .options(selectinload(Order.lines).selectinload(OrderLine.product))
            .filter(Order.id == order_id, Order.organization_id == organization_id)
            .first()
        )

    def list(
        self,
        organization_id: int,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> List[Order]:
        q = (
            self.db.query(Order)
            .options(selectinload(Order.lines))
            .filter(Order.organization_id == organization_id)
        )
        if status:
            q = q.filter(Order.status == status)
        if client_id is not None:
            q = q.filter(Order.client_id == client_id)
        if created_by is not None:
            q = q.filter(Order.created_by == created_by)
        return q.order_by(Order.created_at.desc(), Order.id.desc()).all()

    def count_open_for_client(self, organization_id: int, client_id: int) -> int:
        return (
            self.db.query(func.count(Order.id))
            .filter(
                Order.organization_id == organization_id,
                Order.client_id == client_id,
                Order.status.in_(("pending", "confirmed", "shipped")),
            )
            .scalar()
            or 0
        )

    def create(
        self,
        organization_id: int,
        client_id: Optional[int],
        cart_id: Optional[int],
        created_by: Optional[int],
        customer_name: str,
        customer_email: str,
        currency: str,
        total_cents: int,
    ) -> Order:
        o = Order(
            order_number=self._gen_order_number(),
            organization_id=organization_id,
            client_id=client_id,
            cart_id=cart_id,
            created_by=created_by,
            customer_name=customer_name,
            customer_email=customer_email or "",
            status="pending",
            currency=currency,
            total_cents=total_cents,
        )
        self.db.add(o)
        self.db.flush()
        return o

    def add_line(
        self,
        order: Order,
        product_id: int,
        sku: Optional[str],
        name: Optional[str],
        quantity: int,
        unit_price_cents: int,
        total_price_cents: int,
    ) -> OrderLine:
        ol = OrderLine(
            order_id=order.id,
            product_id=product_id,
            sku=sku,
            name=name,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            total_price_cents=total_price_cents,
        )
        self.db.add(ol)
        self.db.flush()
        return ol

    def transition(self, organization_id: int, order_id: int, from_status: str, to_status: str) -> int:
        result = self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.organization_id == organization_id,
                Order.status == from_status,
            )
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def set_remote_order_id(self, organization_id: int, order_id: int, remote_order_id: str) -> int:
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.organization_id == organization_id)
            .values(remote_order_id=remote_order_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
