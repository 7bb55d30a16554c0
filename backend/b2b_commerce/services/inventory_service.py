from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from b2b_commerce.config import settings
from b2b_commerce.errors import InventoryShortageError, Shortage
from b2b_commerce.models.product import Product
from b2b_commerce.repositories.product_repo import ProductRepository
from b2b_commerce.utils.logging import get_logger

log = get_logger(__name__)


class InventoryService:
    """
    Stock checks for cart mutations and checkout.

    Reads never reserve anything; the only write is the conditional
    decrement used at checkout commit.
    """

    def __init__(self, db: Session):
        self.db = db
        self.products = ProductRepository(db)

    def check(self, product: Optional[Product], requested: int, name: Optional[str] = None) -> Optional[Shortage]:
        """None when `requested` units of `product` can be sold right now."""
        if product is None or not product.active:
            return Shortage(
                product_id=product.id if product is not None else None,
                sku=product.sku if product is not None else None,
                name=name or (product.name if product is not None else None),
                requested=requested,
                available=0,
                inactive=True,
            )
        if product.stock < requested:
            return Shortage(
                product_id=product.id,
                sku=product.sku,
                name=name or product.name,
                requested=requested,
                available=product.stock,
            )
        return None

    def check_many(self, organization_id: int, wanted: Iterable[Tuple[int, int, str]]) -> List[Shortage]:
        """
        wanted: (product_id, quantity, display name) triples.
        Products are re-read from the store, never taken from a cached view.
        """
        wanted = list(wanted)
        by_id: Dict[int, Product] = self.products.get_many(organization_id, [w[0] for w in wanted])
        shortages = []
        for product_id, qty, name in wanted:
            s = self.check(by_id.get(product_id), qty, name=name)
            if s is not None:
                if s.product_id is None:
                    s.product_id = product_id
                shortages.append(s)
        return shortages

    def ensure_available(self, product: Optional[Product], requested: int, name: Optional[str] = None) -> None:
        s = self.check(product, requested, name=name)
        if s is not None:
            raise InventoryShortageError([s], message=s.describe())

    def advisory_report(self, lines: Iterable[Tuple[str, int, Optional[Product]]]) -> Tuple[List[str], List[str]]:
        """
        Read-only pre-checkout view of (line name, quantity, live product).
        Returns (issues, warnings); any issue blocks checkout, warnings do not.
        """
        issues, warnings = [], []
        factor = settings.LOW_STOCK_FACTOR
        for name, qty, product in lines:
            if product is None or not product.active:
                issues.append(f"Product {name} is no longer available")
                continue
            if product.stock < qty:
                issues.append(
                    f"Insufficient stock for {name}. Available: {product.stock}, In cart: {qty}"
                )
            elif product.stock < qty * factor:
                warnings.append(f"Low stock for {name}. Only {product.stock} remaining")
        return issues, warnings

    def decrement(self, organization_id: int, product_id: int, qty: int, name: Optional[str] = None) -> None:
        """
        Compare-and-decrement; raises InventoryShortageError when the store
        refuses (stock moved below qty since it was checked).
        """
        if self.products.decrement_stock(organization_id, product_id, qty):
            return
        available = self.products.current_stock(organization_id, product_id) or 0
        log.warning(
            "stock decrement refused product=%s requested=%s available=%s",
            product_id,
            qty,
            available,
        )
        raise InventoryShortageError(
            [Shortage(product_id=product_id, sku=None, name=name, requested=qty, available=available)]
        )
