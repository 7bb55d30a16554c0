from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from b2b_commerce.config import settings
from b2b_commerce.errors import NotFoundError, StoreError, ValidationError
from b2b_commerce.models.cart import CART_STATUSES, Cart
from b2b_commerce.models.cart_item import CartItem
from b2b_commerce.repositories.cart_repo import CartRepository
from b2b_commerce.repositories.client_repo import ClientRepository
from b2b_commerce.repositories.product_repo import ProductRepository
from b2b_commerce.services.access_service import AccessContext, ensure_cart_access
from b2b_commerce.services.inventory_service import InventoryService
from b2b_commerce.services.remote_sync_service import RemoteSyncService
from b2b_commerce.utils.logging import get_logger
from b2b_commerce.utils.transactions import unit_of_work

log = get_logger(__name__)

# insert races on the (cart, product) unique key are retried as increments
_MAX_ATTEMPTS = 3


class CartService:
    """
    Cart aggregate: lifecycle and line mutations for one caller.

    Every mutation runs in a single transaction that first takes the
    status guard (UPDATE ... WHERE status = 'active'), applies the line
    change, then recomputes totals from the lines. Remote mirroring happens
    only after commit.
    """

    def __init__(self, db: Session, ctx: AccessContext, sync: Optional[RemoteSyncService] = None):
        self.db = db
        self.ctx = ctx
        self.sync = sync
        self.carts = CartRepository(db)
        self.clients = ClientRepository(db)
        self.products = ProductRepository(db)
        self.inventory = InventoryService(db)

    # --- cart lifecycle ------------------------------------------------

    def create_cart(self, client_id: int) -> Tuple[Cart, bool]:
        """Returns (cart, created). An existing active cart is reused."""
        org = self.ctx.organization_id
        client = self.clients.get(org, client_id)
        if not client:
            raise NotFoundError("Client not found")

        existing = self.carts.get_active_for(org, client.id, self.ctx.user_id)
        if existing:
            return existing, False

        expires_at = datetime.now(timezone.utc) + timedelta(days=settings.CART_TTL_DAYS)
        try:
            with unit_of_work(self.db):
                cart = self.carts.create(
                    org,
                    client.id,
                    self.ctx.user_id,
                    currency=client.preferred_currency or settings.DEFAULT_CURRENCY,
                    expires_at=expires_at,
                )
        except IntegrityError:
            # a concurrent request created the active cart first
            existing = self.carts.get_active_for(org, client.id, self.ctx.user_id)
            if existing:
                return existing, False
            raise StoreError("Failed to create cart")

        log.info("cart %s created org=%s client=%s user=%s", cart.id, org, client.id, self.ctx.user_id)
        if self.sync is not None:
            self.sync.create_cart(cart, client)
        return self.carts.get(org, cart.id), True

    def get_cart(self, cart_id: int) -> Cart:
        cart = self.carts.get(self.ctx.organization_id, cart_id)
        if not cart:
            raise NotFoundError("Cart not found")
        ensure_cart_access(self.ctx, cart)
        return cart

    def list_carts(self, status: str = "active", client_id: Optional[int] = None) -> List[Cart]:
        if status not in CART_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}")
        return self.carts.list_for_user(self.ctx.organization_id, self.ctx.user_id, status, client_id)

    def update_cart(self, cart_id: int, currency: Optional[str] = None, expires_at: Optional[datetime] = None) -> Cart:
        cart = self.get_cart(cart_id)
        values = {}
        if currency:
            values["currency"] = currency.upper()
        if expires_at is not None:
            values["expires_at"] = expires_at
        with unit_of_work(self.db):
            if self.carts.update_if_active(cart.organization_id, cart.id, **values) == 0:
                raise ValidationError("Cannot update inactive cart")
        return self.carts.get(cart.organization_id, cart.id)

    def abandon_cart(self, cart_id: int) -> Cart:
        """Soft transition; lines are kept."""
        cart = self.get_cart(cart_id)
        with unit_of_work(self.db):
            if self.carts.transition(cart.organization_id, cart.id, "abandoned") == 0:
                raise ValidationError("Cart is not active")
        log.info("cart %s abandoned by user=%s", cart.id, self.ctx.user_id)
        return self.carts.get(cart.organization_id, cart.id)

    def expire_overdue(self) -> List[int]:
        with unit_of_work(self.db):
            ids = self.carts.expire_overdue()
        return ids

    # --- lines ---------------------------------------------------------

    def _guard(self, cart: Cart) -> None:
        if self.carts.touch_if_active(cart.organization_id, cart.id) == 0:
            raise ValidationError("Cannot modify inactive cart")

    def _mutable_cart(self, cart_id: int) -> Cart:
        cart = self.get_cart(cart_id)
        if not cart.is_active:
            raise ValidationError("Cannot modify inactive cart")
        return cart

    def add_item(self, cart_id: int, product_id: int, quantity: int) -> Tuple[CartItem, bool]:
        """
        Add `quantity` of a product. An existing line for the product is
        extended at its locked unit price; stock is checked against the
        merged quantity. Returns (line, created).
        """
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Product ID and valid quantity are required")
        cart = self._mutable_cart(cart_id)
        product = self.products.get_active(cart.organization_id, product_id)
        if not product:
            raise NotFoundError("Product not found or not available")

        for attempt in range(1, _MAX_ATTEMPTS + 1):
            try:
                with unit_of_work(self.db):
                    self._guard(cart)
                    created = self.carts.increment_item(cart.id, product.id, quantity) == 0
                    if created:
                        item = self.carts.insert_item(cart.id, product, quantity)
                    else:
                        item = self.carts.get_item_by_product(cart.id, product.id)
                    self.db.refresh(product)
                    self.inventory.ensure_available(product, item.quantity)
                    self.carts.recompute_totals(cart.organization_id, cart.id)
                break
            except IntegrityError:
                if attempt == _MAX_ATTEMPTS:
                    raise StoreError("Failed to add item to cart")
                log.debug("line insert raced on cart=%s product=%s, retrying", cart.id, product.id)

        item = self.carts.get_item(cart.id, item.id)
        if self.sync is not None:
            self.sync.sync_line(cart, item)
        return item, created

    def update_item(self, cart_id: int, item_id: int, quantity: int) -> Optional[CartItem]:
        """Set the line quantity; 0 removes the line and returns None."""
        if not isinstance(quantity, int) or quantity < 0:
            raise ValidationError("Valid quantity is required (0 to remove item)")
        if quantity == 0:
            self.remove_item(cart_id, item_id)
            return None

        cart = self._mutable_cart(cart_id)
        item = self.carts.get_item(cart.id, item_id)
        if not item:
            raise NotFoundError("Cart item not found")
        with unit_of_work(self.db):
            self._guard(cart)
            product = self.products.get(cart.organization_id, item.product_id)
            if product is not None:
                self.db.refresh(product)
            self.inventory.ensure_available(product, quantity, name=item.product_name)
            if self.carts.set_item_quantity(cart.id, item.id, quantity) == 0:
                raise NotFoundError("Cart item not found")
            self.carts.recompute_totals(cart.organization_id, cart.id)

        item = self.carts.get_item(cart.id, item.id)
        if self.sync is not None:
            self.sync.sync_line(cart, item)
        return item

    def remove_item(self, cart_id: int, item_id: int) -> None:
        cart = self._mutable_cart(cart_id)
        item = self.carts.get_item(cart.id, item_id)
        if not item:
            raise NotFoundError("Cart item not found")
        remote_line_id = item.remote_line_id
        with unit_of_work(self.db):
            self._guard(cart)
            if self.carts.delete_item(cart.id, item.id) == 0:
                raise NotFoundError("Cart item not found")
            self.carts.recompute_totals(cart.organization_id, cart.id)
        self.db.expunge(item)

        if self.sync is not None and remote_line_id:
            self.sync.remove_line(cart, remote_line_id)

    def recompute_totals(self, cart_id: int) -> Cart:
        cart = self.get_cart(cart_id)
        with unit_of_work(self.db):
            self.carts.recompute_totals(cart.organization_id, cart.id)
        return self.carts.get(cart.organization_id, cart.id)
