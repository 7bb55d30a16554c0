from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from b2b_commerce.config import settings
from b2b_commerce.errors import InventoryShortageError, NotFoundError, ValidationError
from b2b_commerce.models.cart import Cart
from b2b_commerce.models.idempotency import IdempotencyStatus
from b2b_commerce.repositories.cart_repo import CartRepository
from b2b_commerce.repositories.client_repo import ClientRepository
from b2b_commerce.repositories.idempotency_repo import IdempotencyRepository
from b2b_commerce.repositories.order_repo import OrderRepository
from b2b_commerce.schemas.cart_schema import (
    CheckoutCartSummary,
    CheckoutReport,
    CheckoutValidation,
    ClientSummary,
)
from b2b_commerce.schemas.order_schema import OrderOut
from b2b_commerce.services.access_service import AccessContext, ensure_cart_access
from b2b_commerce.services.inventory_service import InventoryService
from b2b_commerce.services.remote_sync_service import RemoteSyncService
from b2b_commerce.utils.logging import get_logger
from b2b_commerce.utils.transactions import unit_of_work

log = get_logger(__name__)


class CheckoutService:
    """
    Drives a cart from 'active' to 'completed'.

    Commit is one transaction: status guard, fresh inventory check, order and
    order lines, conditional stock decrements, cart transition. Any failure
    rolls all of it back and leaves the cart active. Remote completion runs
    afterwards and cannot undo a local checkout.
    """

    def __init__(self, db: Session, ctx: AccessContext, sync: Optional[RemoteSyncService] = None):
        self.db = db
        self.ctx = ctx
        self.sync = sync
        self.carts = CartRepository(db)
        self.clients = ClientRepository(db)
        self.orders = OrderRepository(db)
        self.inventory = InventoryService(db)
        self.idem_repo = IdempotencyRepository(db)

    def _load(self, cart_id: int) -> Cart:
        cart = self.carts.get(self.ctx.organization_id, cart_id)
        if not cart:
            raise NotFoundError("Cart not found")
        ensure_cart_access(self.ctx, cart)
        return cart

    # --- advisory ------------------------------------------------------

    def validate(self, cart_id: int) -> CheckoutReport:
        """Read-only pre-checkout report; never trusted by commit."""
        cart = self._load(cart_id)
        issues, warnings = [], []
        if not cart.is_active:
            issues.append("Cart is not active")
        lines = self.carts.items_with_products(cart.id)
        if not lines:
            issues.append("Cart is empty")
        if cart.total_cents <= 0:
            issues.append("Cart total must be greater than zero")
        stock_issues, stock_warnings = self.inventory.advisory_report(
            (item.product_name, item.quantity, product) for item, product in lines
        )
        issues.extend(stock_issues)
        warnings.extend(stock_warnings)

        return CheckoutReport(
            valid=not issues,
            cart=CheckoutCartSummary(
                id=cart.id,
                status=cart.status,
                currency=cart.currency,
                total_cents=cart.total_cents,
                item_count=cart.item_count,
                client=ClientSummary.model_validate(cart.client) if cart.client else None,
            ),
            validation=CheckoutValidation(can_checkout=not issues, issues=issues, warnings=warnings),
        )

    # --- commit --------------------------------------------------------

    def checkout(self, cart_id: int, idempotency_key: Optional[str] = None) -> dict:
        """
        Commit checkout and return the response body. With an idempotency
        key, a retried request gets the stored body of the first success.
        """
        cart = self._load(cart_id)
        if not idempotency_key or not settings.CHECKOUT_IDEMPOTENCY_ENABLED:
            return self._checkout(cart)

        key = f"checkout:{self.ctx.organization_id}:{cart.id}:{idempotency_key}"
        rec, created = self.idem_repo.begin(
            key, "checkout", organization_id=self.ctx.organization_id, cart_id=cart.id
        )
        if not created:
            if rec.status == IdempotencyStatus.COMPLETED and rec.response_body:
                log.info("checkout replayed for cart=%s key=%s", cart.id, idempotency_key)
                return rec.response_body
            if rec.status == IdempotencyStatus.IN_PROGRESS:
                cutoff = datetime.now(timezone.utc) - timedelta(seconds=settings.IDEMPOTENCY_STALE_SECONDS)
                taken = self.idem_repo.restart_stale(key, cutoff)
            else:
                taken = self.idem_repo.restart(key)
            if not taken:
                raise ValidationError("Duplicate checkout request in progress, try again later")

        try:
            body = self._checkout(cart)
        except Exception as e:
            self.idem_repo.mark_failed(key, str(e))
            raise
        self.idem_repo.mark_completed(key, body, order_id=body["order"]["id"])
        return body

    def _checkout(self, cart: Cart) -> dict:
        org = self.ctx.organization_id
        if not cart.is_active:
            raise ValidationError("Cannot checkout inactive cart")
        client = self.clients.get(org, cart.client_id, include_inactive=True)

        with unit_of_work(self.db):
            if self.carts.touch_if_active(org, cart.id) == 0:
                raise ValidationError("Cannot checkout inactive cart")
            lines = self.carts.items(cart.id)
            if not lines:
                raise ValidationError("Cart is empty")
            fresh = self.carts.get(org, cart.id)
            if fresh.total_cents <= 0:
                raise ValidationError("Cart total must be greater than zero")

            shortages = self.inventory.check_many(
                org, [(it.product_id, it.quantity, it.product_name) for it in lines]
            )
            if shortages:
                raise InventoryShortageError(shortages)

            order = self.orders.create(
                organization_id=org,
                client_id=cart.client_id,
                cart_id=cart.id,
                created_by=self.ctx.user_id,
                customer_name=client.display_name if client else "Unknown Client",
                customer_email=client.contact_email if client else "",
                currency=fresh.currency,
                total_cents=fresh.total_cents,
            )
            for it in lines:
                self.orders.add_line(
                    order,
                    product_id=it.product_id,
                    sku=it.product_sku,
                    name=it.product_name,
                    quantity=it.quantity,
                    unit_price_cents=it.unit_price_cents,
                    total_price_cents=it.total_price_cents,
                )
            for it in lines:
                self.inventory.decrement(org, it.product_id, it.quantity, name=it.product_name)
            if self.carts.transition(org, cart.id, "completed") == 0:
                raise ValidationError("Cannot checkout inactive cart")
            order_id = order.id
            remote_cart_id = fresh.remote_cart_id

        log.info("checkout cart=%s order=%s total_cents=%s", cart.id, order_id, fresh.total_cents)

        sync_result = None
        if self.sync is not None and remote_cart_id:
            sync_result = self.sync.complete_checkout(remote_cart_id, client)
            if sync_result.success and sync_result.order_id:
                with unit_of_work(self.db):
                    self.orders.set_remote_order_id(org, order_id, sync_result.order_id)
            elif not sync_result.success:
                log.warning("remote completion failed for cart=%s: %s", cart.id, sync_result.error)

        order = self.orders.get(org, order_id)
        return {
            "order": OrderOut.model_validate(order).model_dump(mode="json"),
            "message": "Checkout completed successfully",
            "remote_sync": sync_result.as_dict() if sync_result else None,
        }
