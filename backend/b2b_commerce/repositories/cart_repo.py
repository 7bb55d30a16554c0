from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from b2b_commerce.models.cart import Cart
from b2b_commerce.models.cart_item import CartItem
from b2b_commerce.models.product import Product


class CartRepository:
    """
    Carts and their lines. Every cart lookup is scoped by organization id and
    every cart write is guarded by status = 'active'; the guarded methods
    return the affected row count so callers can detect a lost race.
    """

    def __init__(self, db: Session):
        self.db = db

    # --- carts ---------------------------------------------------------

    def get(self, organization_id: int, cart_id: int) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter(Cart.id == cart_id, Cart.organization_id == organization_id)
            .populate_existing()
            .first()
        )

    def get_active_for(self, organization_id: int, client_id: int, user_id: int) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter(
                Cart.organization_id == organization_id,
                Cart.client_id == client_id,
                Cart.user_id == user_id,
                Cart.status == "active",
            )
            .first()
        )

    def list_for_user(
        self,
        organization_id: int,
        user_id: int,
        status: str = "active",
        client_id: Optional[int] = None,
    ) -> List[Cart]:
        q = self.db.query(Cart).filter(
            Cart.organization_id == organization_id,
            Cart.user_id == user_id,
            Cart.status == status,
        )
        if client_id is not None:
            q = q.filter(Cart.client_id == client_id)
        return q.order_by(Cart.updated_at.desc(), Cart.id.desc()).all()

    def count_active_for_client(self, organization_id: int, client_id: int) -> int:
        return (
            self.db.query(func.count(Cart.id))
            .filter(
                Cart.organization_id == organization_id,
                Cart.client_id == client_id,
                Cart.status == "active",
            )
            .scalar()
            or 0
        )

    def create(
        self,
        organization_id: int,
        client_id: int,
        user_id: int,
        currency: str,
        expires_at: datetime,
    ) -> Cart:
        c = Cart(
            organization_id=organization_id,
            client_id=client_id,
            user_id=user_id,
            status="active",
            currency=currency,
            total_cents=0,
            item_count=0,
            expires_at=expires_at,
        )
        self.db.add(c)
        self.db.flush()
        return c

    def touch_if_active(self, organization_id: int, cart_id: int) -> int:
        """Status guard; also takes the cart row's write lock for the transaction."""
        return self.update_if_active(organization_id, cart_id, updated_at=datetime.now(timezone.utc))

    def update_if_active(self, organization_id: int, cart_id: int, **values) -> int:
        if "updated_at" not in values:
            values["updated_at"] = datetime.now(timezone.utc)
        result = self.db.execute(
            update(Cart)
            .where(
                Cart.id == cart_id,
                Cart.organization_id == organization_id,
                Cart.status == "active",
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def transition(self, organization_id: int, cart_id: int, to_status: str) -> int:
        """Guarded move out of 'active'; 0 means someone else already moved it."""
        return self.update_if_active(organization_id, cart_id, status=to_status)

    def recompute_totals(self, organization_id: int, cart_id: int) -> int:
        """
        total_cents = sum(line totals), item_count = sum(line quantities),
        computed by the store in one statement from the current lines.
        """
        total_q = (
            select(func.coalesce(func.sum(CartItem.total_price_cents), 0))
            .where(CartItem.cart_id == cart_id)
            .scalar_subquery()
        )
        count_q = (
            select(func.coalesce(func.sum(CartItem.quantity), 0))
            .where(CartItem.cart_id == cart_id)
            .scalar_subquery()
        )
        return self.update_if_active(
            organization_id, cart_id, total_cents=total_q, item_count=count_q
        )

    def apply_remote_totals(
        self, organization_id: int, cart_id: int, total_cents: int, item_count: int, currency: Optional[str]
    ) -> int:
        values = {"total_cents": total_cents, "item_count": item_count}
        if currency:
            values["currency"] = currency.upper()
        return self.update_if_active(organization_id, cart_id, **values)

    def set_remote_cart_id(self, organization_id: int, cart_id: int, remote_cart_id: Optional[str]) -> int:
        result = self.db.execute(
            update(Cart)
            .where(Cart.id == cart_id, Cart.organization_id == organization_id)
            .values(remote_cart_id=remote_cart_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def expire_overdue(self, now: Optional[datetime] = None) -> List[int]:
        now = now or datetime.now(timezone.utc)
        ids = [
            r[0]
            for r in self.db.query(Cart.id)
            .filter(Cart.status == "active", Cart.expires_at != None, Cart.expires_at <= now)
            .all()
        ]
        if not ids:
            return []
        self.db.execute(
            update(Cart)
            .where(Cart.id.in_(ids), Cart.status == "active")
            .values(status="abandoned", updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return ids

    # --- lines ---------------------------------------------------------

    def items(self, cart_id: int) -> List[CartItem]:
        return (
            self.db.query(CartItem)
            .filter(CartItem.cart_id == cart_id)
            .order_by(CartItem.id)
            .populate_existing()
            .all()
        )

    def items_with_products(self, cart_id: int) -> List[tuple]:
        """(CartItem, Product) pairs read fresh from the store."""
        return (
            self.db.query(CartItem, Product)
            .join(Product, Product.id == CartItem.product_id)
            .filter(CartItem.cart_id == cart_id)
            .order_by(CartItem.id)
            .populate_existing()
            .all()
        )

    def get_item(self, cart_id: int, item_id: int) -> Optional[CartItem]:
        return (
            self.db.query(CartItem)
            .filter(CartItem.id == item_id, CartItem.cart_id == cart_id)
            .populate_existing()
            .first()
        )

    def get_item_by_product(self, cart_id: int, product_id: int) -> Optional[CartItem]:
        return (
            self.db.query(CartItem)
            .filter(CartItem.cart_id == cart_id, CartItem.product_id == product_id)
            .populate_existing()
            .first()
        )

    def increment_item(self, cart_id: int, product_id: int, qty: int) -> int:
        """
        quantity += qty on the existing (cart, product) line, keeping the
        locked unit price. Single statement, so concurrent adds do not lose
        updates. Returns rows affected (0 = no line yet).
        """
        result = self.db.execute(
            update(CartItem)
            .where(CartItem.cart_id == cart_id, CartItem.product_id == product_id)
            .values(
                quantity=CartItem.quantity + qty,
                total_price_cents=CartItem.unit_price_cents * (CartItem.quantity + qty),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def insert_item(self, cart_id: int, product: Product, qty: int) -> CartItem:
        it = CartItem(
            cart_id=cart_id,
            product_id=product.id,
            quantity=qty,
            unit_price_cents=product.price_cents,
            total_price_cents=product.price_cents * qty,
            product_name=product.name,
            product_sku=product.sku,
            product_description=product.description,
        )
        self.db.add(it)
        self.db.flush()
        return it

    def set_item_quantity(self, cart_id: int, item_id: int, qty: int) -> int:
        result = self.db.execute(
            update(CartItem)
            .where(CartItem.id == item_id, CartItem.cart_id == cart_id)
            .values(
                quantity=qty,
                total_price_cents=CartItem.unit_price_cents * qty,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_item(self, cart_id: int, item_id: int) -> int:
        result = self.db.execute(
            delete(CartItem)
            .where(CartItem.id == item_id, CartItem.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def set_item_remote_line_id(self, cart_id: int, item_id: int, remote_line_id: Optional[str]) -> int:
        result = self.db.execute(
            update(CartItem)
            .where(CartItem.id == item_id, CartItem.cart_id == cart_id)
            .values(remote_line_id=remote_line_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
