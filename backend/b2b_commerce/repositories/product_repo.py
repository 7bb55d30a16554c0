from typing import Iterable, List, Optional

from b2b_commerce.models.product import Product
from sqlalchemy import update
from sqlalchemy.orm import Session


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, organization_id: int, product_id: int) -> Optional[Product]:
        return (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.organization_id == organization_id)
            .first()
        )

    def get_active(self, organization_id: int, product_id: int) -> Optional[Product]:
        return (
            self.db.query(Product)
            .filter(
                Product.id == product_id,
                Product.organization_id == organization_id,
                Product.active == True,
            )
            .first()
        )

    def get_many(self, organization_id: int, product_ids: Iterable[int]) -> dict:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = (
            self.db.query(Product)
            .filter(Product.organization_id == organization_id, Product.id.in_(ids))
            .populate_existing()
            .all()
        )
        return {p.id: p for p in rows}

    def list(
        self, organization_id: int, q: Optional[str] = None, include_inactive: bool = False
    ) -> List[Product]:
        query = self.db.query(Product).filter(Product.organization_id == organization_id)
        if not include_inactive:
            query = query.filter(Product.active == True)
        if q:
            like = f"%{q}%"
            query = query.filter(
                (Product.name.ilike(like)) | (Product.sku.ilike(like))
            )
        return query.order_by(Product.name).all()

    def current_stock(self, organization_id: int, product_id: int) -> Optional[int]:
        return (
            self.db.query(Product.stock)
            .filter(Product.id == product_id, Product.organization_id == organization_id)
            .scalar()
        )

    def decrement_stock(self, organization_id: int, product_id: int, qty: int) -> bool:
        """
        Compare-and-decrement: stock = stock - qty only where stock >= qty.
        Returns False when no row was updated (missing product or the stock
        moved underneath the caller).
        """
        result = self.db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.organization_id == organization_id,
                Product.stock >= qty,
            )
            .values(stock=Product.stock - qty)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def create_or_update(
        self,
        organization_id: int,
        sku: str,
        name: str,
        price_cents: int,
        stock: int = 0,
        description: str = None,
        active: bool = True,
        remote_product_id: str = None,
    ) -> Product:
        p = (
            self.db.query(Product)
            .filter(Product.organization_id == organization_id, Product.sku == sku)
            .first()
        )
        if p:
            p.name = name
            p.price_cents = price_cents
            p.stock = stock
            p.description = description
            p.active = active
            p.remote_product_id = remote_product_id
        else:
            p = Product(
                organization_id=organization_id,
                sku=sku,
                name=name,
                price_cents=price_cents,
                stock=stock,
                description=description,
                active=active,
                remote_product_id=remote_product_id,
            )
            self.db.add(p)
        self.db.flush()
        return p
