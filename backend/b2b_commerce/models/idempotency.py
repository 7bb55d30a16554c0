import enum
from datetime import datetime, timezone

from b2b_commerce.db import Base
from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Integer, String


class IdempotencyStatus(enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class IdempotencyRecord(Base):
    """
    One client-supplied Idempotency-Key per checkout attempt. The key is
    already scoped to organization and cart; the columns below are kept
    for lookups and cleanup.
    """

    __tablename__ = "idempotency_records"
    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(255), unique=True, nullable=False, index=True)
    operation = Column(String(64), nullable=False)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="SET NULL"), nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    status = Column(Enum(IdempotencyStatus), nullable=False, default=IdempotencyStatus.IN_PROGRESS)
    # replayed verbatim to retries of a completed attempt
    response_body = Column(JSON, nullable=True)
    last_error = Column(String(1024), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
