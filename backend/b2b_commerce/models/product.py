from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String, Boolean, Text, UniqueConstraint
from b2b_commerce.db import Base

class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("organization_id", "sku"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sku = Column(String(64), index=True, nullable=True)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, default=True, nullable=False)
    stock = Column(Integer, default=0, nullable=False)
    remote_product_id = Column(String(128), nullable=True, index=True)

    def __repr__(self):
        return f"<Product sku={self.sku} name={self.name}>"
