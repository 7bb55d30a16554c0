from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from b2b_commerce.db import Base


class Client(Base):
    """B2B customer owned by an organization."""

    __tablename__ = "clients"
    __table_args__ = (
        UniqueConstraint("organization_id", "company_name"),
        UniqueConstraint("organization_id", "contact_email"),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    remote_customer_id = Column(String(128), unique=True, nullable=True, index=True)

    company_name = Column(String(255), nullable=False)
    contact_name = Column(String(255), nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(64), nullable=True)

    tax_id = Column(String(64), nullable=True)
    business_type = Column(String(32), nullable=True)  # corporation, partnership, llc, ...
    industry = Column(String(128), nullable=True)

    billing_address_line1 = Column(String(255), nullable=True)
    billing_address_line2 = Column(String(255), nullable=True)
    billing_city = Column(String(128), nullable=True)
    billing_state = Column(String(128), nullable=True)
    billing_postal_code = Column(String(32), nullable=True)
    billing_country = Column(String(2), nullable=True, default="US")

    shipping_address_line1 = Column(String(255), nullable=True)
    shipping_address_line2 = Column(String(255), nullable=True)
    shipping_city = Column(String(128), nullable=True)
    shipping_state = Column(String(128), nullable=True)
    shipping_postal_code = Column(String(32), nullable=True)
    shipping_country = Column(String(2), nullable=True, default="US")

    payment_terms = Column(String(16), nullable=True, default="net_30")
    credit_limit_cents = Column(Integer, nullable=False, default=0)
    preferred_currency = Column(String(3), nullable=False, default="USD")
    notes = Column(Text, nullable=True)

    active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def display_name(self) -> str:
        return self.company_name or self.contact_name or "Unknown Client"

    def __repr__(self):
        return f"<Client id={self.id} company={self.company_name}>"
