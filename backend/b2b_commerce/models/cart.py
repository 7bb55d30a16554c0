from datetime import datetime, timezone

from b2b_commerce.db import Base
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

CART_STATUSES = ("active", "completed", "abandoned")


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        # one active cart per (organization, client, staff user)
        Index(
            "uq_carts_one_active",
            "organization_id",
            "client_id",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    remote_cart_id = Column(String(128), unique=True, nullable=True, index=True)
    status = Column(String(16), nullable=False, default="active", index=True)
    currency = Column(String(3), nullable=False, default="USD")
    total_cents = Column(Integer, nullable=False, default=0)  # derived
    item_count = Column(Integer, nullable=False, default=0)  # derived
    expires_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    items = relationship("CartItem", back_populates="cart", order_by="CartItem.id")
    client = relationship("Client")
    user = relationship("User")

    @property
    def is_active(self) -> bool:
        return self.status == "active"
