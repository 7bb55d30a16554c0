from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from b2b_commerce.db import SessionLocal  # short-lived sessions so markers commit independently
from b2b_commerce.models.idempotency import IdempotencyRecord, IdempotencyStatus
from b2b_commerce.utils.logging import get_logger

log = get_logger(__name__)


class IdempotencyRepository:
    """
    Checkout replay markers. Every write runs on its own short session and
    commits at once, so a marker is visible to concurrent requests and
    survives the rollback of the checkout it guards.
    """

    def __init__(self, db: Session):
        # db is the caller's request session, used for reads only
        self.db = db

    def get(self, key: str) -> Optional[IdempotencyRecord]:
        """Fresh read of the record for `key`, bypassing the identity map."""
        return (
            self.db.query(IdempotencyRecord)
            .filter(IdempotencyRecord.key == key)
            .populate_existing()
            .first()
        )

    def begin(
        self,
        key: str,
        operation: str,
        organization_id: Optional[int] = None,
        cart_id: Optional[int] = None,
    ) -> Tuple[Optional[IdempotencyRecord], bool]:
        """
        Insert an IN_PROGRESS marker for `key`.
        Returns (record, created); created is False when an earlier or
        concurrent request already holds the key.
        """
        created = False
        try:
            with SessionLocal() as s:
                s.add(
                    IdempotencyRecord(
                        key=key,
                        operation=operation,
                        organization_id=organization_id,
                        cart_id=cart_id,
                        status=IdempotencyStatus.IN_PROGRESS,
                    )
                )
                s.commit()
                created = True
        except IntegrityError:
            log.debug("key %r already recorded", key)
        return self.get(key), created

    def restart(self, key: str) -> bool:
        """FAILED -> IN_PROGRESS; False when another request took it first."""
        with SessionLocal() as s:
            n = (
                s.query(IdempotencyRecord)
                .filter(
                    IdempotencyRecord.key == key,
                    IdempotencyRecord.status == IdempotencyStatus.FAILED,
                )
                .update(
                    {"status": IdempotencyStatus.IN_PROGRESS, "last_error": None},
                    synchronize_session=False,
                )
            )
            s.commit()
        return n == 1

    def restart_stale(self, key: str, older_than: datetime) -> bool:
        """
        Take over an IN_PROGRESS marker not touched since `older_than`, left
        behind by a worker that died mid-checkout. False when the marker is
        fresh or another request took it over first.
        """
        with SessionLocal() as s:
            n = (
                s.query(IdempotencyRecord)
                .filter(
                    IdempotencyRecord.key == key,
                    IdempotencyRecord.status == IdempotencyStatus.IN_PROGRESS,
                    IdempotencyRecord.updated_at < older_than,
                )
                .update(
                    {"updated_at": datetime.now(timezone.utc), "last_error": None},
                    synchronize_session=False,
                )
            )
            s.commit()
        if n == 1:
            log.warning("stale in-progress marker %r taken over", key)
        return n == 1

    def mark_completed(self, key: str, response_body: dict, order_id: Optional[int] = None) -> None:
        with SessionLocal() as s:
            rec = s.query(IdempotencyRecord).filter(IdempotencyRecord.key == key).first()
            if not rec:
                raise RuntimeError(f"Idempotency record missing for key: {key}")
            rec.status = IdempotencyStatus.COMPLETED
            rec.response_body = response_body
            rec.order_id = order_id
            rec.last_error = None
            s.commit()

    def mark_failed(self, key: str, error_message: str) -> None:
        with SessionLocal() as s:
            rec = s.query(IdempotencyRecord).filter(IdempotencyRecord.key == key).first()
            if not rec:
                return
            rec.status = IdempotencyStatus.FAILED
            rec.last_error = (error_message or "")[:1024]
            s.commit()
