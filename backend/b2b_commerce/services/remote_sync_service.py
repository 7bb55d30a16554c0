from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from b2b_commerce.config import settings
from b2b_commerce.errors import RemoteSyncError
from b2b_commerce.models.cart import Cart
from b2b_commerce.models.cart_item import CartItem
from b2b_commerce.models.client import Client
from b2b_commerce.repositories.cart_repo import CartRepository
from b2b_commerce.repositories.client_repo import ClientRepository
from b2b_commerce.utils.logging import get_logger
from b2b_commerce.utils.transactions import unit_of_work

log = get_logger(__name__)


@dataclass
class SyncResult:
    success: bool
    remote_id: Optional[str] = None
    error: Optional[str] = None
    conflicts: List[str] = field(default_factory=list)
    items_synced: int = 0
    order_id: Optional[str] = None
    skipped: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


def split_contact_name(contact_name: Optional[str]):
    parts = (contact_name or "").strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class RemoteSyncService:
    """
    Best-effort mirror of clients, carts and cart lines to the remote commerce
    backend. Public methods never raise: every outcome is a SyncResult and
    failures are logged. Runs after the local transaction has committed; the
    only local writes are remote ids and remote totals, each in its own
    short transaction.
    """

    def __init__(self, db: Session, backend, subdomain: Optional[str] = None):
        self.db = db
        self.backend = backend
        self.subdomain = subdomain
        self.carts = CartRepository(db)
        self.clients = ClientRepository(db)

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    def _run(self, op: str, fn: Callable[[], SyncResult]) -> SyncResult:
        if not self.enabled:
            return SyncResult(success=False, skipped=True, error="Commerce backend not configured")
        try:
            return fn()
        except RemoteSyncError as e:
            log.warning("%s failed: %s", op, e)
            return SyncResult(success=False, error=str(e))
        except Exception as e:  # sync boundary: local state is already durable
            log.warning("%s failed unexpectedly: %s", op, e, exc_info=True)
            return SyncResult(success=False, error=str(e) or e.__class__.__name__)

    def validate_connection(self) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(self.backend.validate_connection())
        except Exception as e:  # health probe, same boundary as _run
            log.warning("commerce backend connection check failed: %s", e)
            return False

    # --- customers -----------------------------------------------------

    def _client_metadata(self, client: Client) -> Dict[str, Any]:
        return {
            "b2b_customer": True,
            "organization_id": client.organization_id,
            "organization_subdomain": self.subdomain,
            "client_id": client.id,
            "business_type": client.business_type,
            "tax_id": client.tax_id,
            "industry": client.industry,
            "payment_terms": client.payment_terms,
            "credit_limit_cents": client.credit_limit_cents,
            "preferred_currency": client.preferred_currency,
        }

    def _customer_payload(self, client: Client) -> Dict[str, Any]:
        first, last = split_contact_name(client.contact_name)
        return {
            "email": client.contact_email,
            "first_name": first,
            "last_name": last,
            "phone": client.contact_phone,
            "company_name": client.company_name,
            "metadata": self._client_metadata(client),
        }

    def _store_customer_id(self, client: Client, remote_id: Optional[str]) -> None:
        with unit_of_work(self.db):
            self.clients.set_remote_customer_id(client, remote_id)

    @staticmethod
    def _is_mirror_of(customer: Dict[str, Any], client: Client) -> bool:
        meta = customer.get("metadata") or {}
        return bool(meta.get("b2b_customer")) and meta.get("client_id") == client.id

    def _create_customer(self, client: Client, force: bool) -> SyncResult:
        matches = self.backend.find_customers_by_email(client.contact_email)
        own = next((c for c in matches if self._is_mirror_of(c, client)), None)
        if own is not None:
            self._store_customer_id(client, own["id"])
            log.info("client %s relinked to existing customer %s", client.id, own["id"])
            return SyncResult(success=True, remote_id=own["id"])
        if matches and not force:
            return SyncResult(
                success=False,
                error="Customer with this email already exists in the commerce backend",
                conflicts=[f"Email: {client.contact_email}"],
            )
        customer = self.backend.create_customer(self._customer_payload(client))
        self._store_customer_id(client, customer["id"])
        log.info("client %s mirrored as customer %s", client.id, customer["id"])
        return SyncResult(success=True, remote_id=customer["id"])

    def sync_client(self, client: Client, force: bool = False, create_if_not_exists: bool = True) -> SyncResult:
        def run():
            if client.remote_customer_id:
                if self.backend.get_customer(client.remote_customer_id) is not None:
                    customer = self.backend.update_customer(
                        client.remote_customer_id, self._customer_payload(client)
                    )
                    return SyncResult(success=True, remote_id=customer["id"])
                log.info("customer %s for client %s is gone remotely", client.remote_customer_id, client.id)
                self._store_customer_id(client, None)
            if not create_if_not_exists:
                return SyncResult(success=False, error="Client is not linked to a remote customer")
            return self._create_customer(client, force)

        return self._run("sync_client", run)

    def customer_exists(self, client: Client) -> Optional[bool]:
        """None when unknown (no link, sync disabled or backend unreachable)."""
        if not self.enabled or not client.remote_customer_id:
            return None
        try:
            return self.backend.get_customer(client.remote_customer_id) is not None
        except RemoteSyncError as e:
            log.warning("customer lookup failed for client %s: %s", client.id, e)
            return None

    def delete_client(self, client: Client) -> SyncResult:
        def run():
            if not client.remote_customer_id:
                return SyncResult(success=True)
            remote_id = client.remote_customer_id
            self.backend.delete_customer(remote_id)
            self._store_customer_id(client, None)
            return SyncResult(success=True, remote_id=remote_id)

        return self._run("delete_client", run)

    # --- carts ---------------------------------------------------------

    def _region_id(self) -> str:
        try:
            regions = self.backend.list_regions()
        except RemoteSyncError as e:
            log.warning("region lookup failed, using default: %s", e)
            return settings.COMMERCE_DEFAULT_REGION_ID
        if not regions:
            return settings.COMMERCE_DEFAULT_REGION_ID
        usd = next((r for r in regions if (r.get("currency_code") or "").lower() == "usd"), None)
        return (usd or regions[0])["id"]

    def create_cart(self, cart: Cart, client: Client) -> SyncResult:
        def run():
            if cart.remote_cart_id and self.backend.get_cart(cart.remote_cart_id) is not None:
                return SyncResult(success=True, remote_id=cart.remote_cart_id)
            remote = self.backend.create_cart(
                self._region_id(),
                customer_id=client.remote_customer_id,
                metadata={
                    "b2b_cart": True,
                    "organization_id": cart.organization_id,
                    "organization_subdomain": self.subdomain,
                    "client_id": cart.client_id,
                    "client_company_name": client.company_name,
                    "cart_id": cart.id,
                    "created_by": cart.user_id,
                },
            )
            with unit_of_work(self.db):
                self.carts.set_remote_cart_id(cart.organization_id, cart.id, remote["id"])
            log.info("cart %s mirrored as %s", cart.id, remote["id"])
            return SyncResult(success=True, remote_id=remote["id"])

        return self._run("create_cart", run)

    def _variant_id(self, item: CartItem) -> str:
        product = item.product
        if product is None or not product.remote_product_id:
            raise RemoteSyncError("Product is not synced with the commerce backend", retryable=False)
        remote_product = self.backend.get_product(product.remote_product_id)
        variants = (remote_product or {}).get("variants") or []
        if not variants:
            raise RemoteSyncError("Product has no variants in the commerce backend", retryable=False)
        return variants[0]["id"]

    @staticmethod
    def _line_for_variant(remote_cart: Optional[Dict[str, Any]], variant_id: str) -> Optional[str]:
        match = next(
            (li for li in (remote_cart or {}).get("items") or [] if li.get("variant_id") == variant_id), None
        )
        return match["id"] if match else None

    def sync_line(self, cart: Cart, item: CartItem) -> SyncResult:
        """
        Push the line's current quantity to the mirror. Quantities are sent
        absolute, so replaying the same sync converges on the same remote line.
        A stored line id the mirror no longer knows is dropped and the line is
        matched again by variant or re-added.
        """

        def run():
            if not cart.remote_cart_id:
                return SyncResult(success=False, skipped=True, error="Cart is not mirrored")
            variant_id = self._variant_id(item)
            stored_line_id = item.remote_line_id
            line_id = stored_line_id
            remote_cart = None
            if line_id:
                try:
                    remote_cart = self.backend.update_line_item(cart.remote_cart_id, line_id, item.quantity)
                except RemoteSyncError as e:
                    if e.status_code != 404:
                        raise
                    log.info("line %s of cart %s is gone remotely, relinking", line_id, cart.id)
                    with unit_of_work(self.db):
                        self.carts.set_item_remote_line_id(cart.id, item.id, None)
                    stored_line_id = line_id = None
            if not line_id:
                line_id = self._line_for_variant(self.backend.get_cart(cart.remote_cart_id), variant_id)
                if line_id:
                    remote_cart = self.backend.update_line_item(cart.remote_cart_id, line_id, item.quantity)
                else:
                    remote_cart = self.backend.add_line_item(
                        cart.remote_cart_id, variant_id, item.quantity, metadata={"cart_item_id": item.id}
                    )
                    line_id = self._line_for_variant(remote_cart, variant_id)
            if line_id and line_id != stored_line_id:
                with unit_of_work(self.db):
                    self.carts.set_item_remote_line_id(cart.id, item.id, line_id)
            self._apply_totals(cart, remote_cart)
            return SyncResult(success=True, remote_id=line_id, items_synced=1)

        return self._run("sync_line", run)

    def remove_line(self, cart: Cart, remote_line_id: Optional[str]) -> SyncResult:
        def run():
            if not cart.remote_cart_id or not remote_line_id:
                return SyncResult(success=False, skipped=True, error="Line is not mirrored")
            remote_cart = self.backend.delete_line_item(cart.remote_cart_id, remote_line_id)
            if remote_cart is None:
                remote_cart = self.backend.get_cart(cart.remote_cart_id)
            self._apply_totals(cart, remote_cart)
            return SyncResult(success=True, remote_id=remote_line_id)

        return self._run("remove_line", run)

    def pull_totals(self, cart: Cart) -> SyncResult:
        def run():
            if not cart.remote_cart_id:
                return SyncResult(success=False, skipped=True, error="Cart is not mirrored")
            applied = self._apply_totals(cart, self.backend.get_cart(cart.remote_cart_id))
            return SyncResult(success=applied, remote_id=cart.remote_cart_id)

        return self._run("pull_totals", run)

    def _apply_totals(self, cart: Cart, remote_cart: Optional[Dict[str, Any]]) -> bool:
        """
        Overwrite local derived totals with the mirror's figures. Skipped while
        the mirror is missing lines (its item count differs from ours).
        """
        if not remote_cart:
            return False
        items = remote_cart.get("items") or []
        remote_count = sum(int(li.get("quantity") or 0) for li in items)
        local = self.carts.get(cart.organization_id, cart.id)
        if local is None or not local.is_active:
            return False
        if remote_count != local.item_count:
            log.info(
                "cart %s mirror incomplete (%s remote units vs %s local), keeping local totals",
                cart.id,
                remote_count,
                local.item_count,
            )
            return False
        total = remote_cart.get("total")
        if total is None:
            total = sum(int(li.get("total") or 0) for li in items)
        currency = (remote_cart.get("region") or {}).get("currency_code")
        with unit_of_work(self.db):
            n = self.carts.apply_remote_totals(cart.organization_id, cart.id, int(total), remote_count, currency)
        return n == 1

    # --- checkout ------------------------------------------------------

    def _address(self, client: Client, kind: str) -> Optional[Dict[str, Any]]:
        line1 = getattr(client, f"{kind}_address_line1")
        if not line1:
            return None
        first, last = split_contact_name(client.contact_name)
        return {
            "first_name": first,
            "last_name": last,
            "company": client.company_name,
            "address_1": line1,
            "address_2": getattr(client, f"{kind}_address_line2"),
            "city": getattr(client, f"{kind}_city") or "",
            "province": getattr(client, f"{kind}_state"),
            "postal_code": getattr(client, f"{kind}_postal_code") or "",
            "country_code": (getattr(client, f"{kind}_country") or "us").lower(),
            "phone": client.contact_phone,
        }

    def complete_checkout(self, remote_cart_id: Optional[str], client: Optional[Client]) -> SyncResult:
        def run():
            if not remote_cart_id:
                return SyncResult(success=False, skipped=True, error="Cart is not mirrored")
            if client is not None:
                payload = {"email": client.contact_email}
                shipping = self._address(client, "shipping")
                billing = self._address(client, "billing") or shipping
                if shipping:
                    payload["shipping_address"] = shipping
                if billing:
                    payload["billing_address"] = billing
                self.backend.update_cart(remote_cart_id, payload)

            options = self.backend.list_shipping_options(remote_cart_id)
            if options:
                self.backend.add_shipping_method(remote_cart_id, options[0]["id"])

            try:
                self.backend.init_payment_sessions(remote_cart_id)
            except RemoteSyncError as e:
                log.warning("payment session init failed for %s, continuing: %s", remote_cart_id, e)

            result = self.backend.complete_cart(remote_cart_id) or {}
            if result.get("type") == "order" and result.get("order"):
                return SyncResult(success=True, remote_id=remote_cart_id, order_id=result["order"]["id"])
            err = result.get("error") or {}
            message = err.get("message") if isinstance(err, dict) else str(err)
            return SyncResult(
                success=False, remote_id=remote_cart_id, error=message or "Cart completion failed"
            )

        return self._run("complete_checkout", run)
