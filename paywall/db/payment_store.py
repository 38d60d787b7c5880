"""SQL-backed payment record store and webhook event log"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from paywall.core.errors import TransientStoreError
from paywall.models.payment_event import PaymentEvent
from paywall.models.payment_record import PaymentRecord

logger = logging.getLogger(__name__)


class PaymentRecordStore:
    """Append-only record of who paid for which article"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, email: str, article_slug: str) -> Optional[PaymentRecord]:
        """Most recent payment record for (email, article_slug), or None"""
        try:
            return (
                self.db.query(PaymentRecord)
                .filter(PaymentRecord.email == email, PaymentRecord.article_slug == article_slug)
                .order_by(PaymentRecord.paid_at.desc(), PaymentRecord.id.desc())
                .first()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise TransientStoreError(f"Payment store unavailable: {type(e).__name__}") from e

    def get_by_payment_id(self, payment_id: str) -> Optional[PaymentRecord]:
        try:
            return self.db.query(PaymentRecord).filter(PaymentRecord.payment_id == payment_id).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise TransientStoreError(f"Payment store unavailable: {type(e).__name__}") from e

    def put(
        self,
        email: str,
        article_slug: str,
        payment_id: str,
        paid_at: Optional[datetime] = None
    ) -> PaymentRecord:
        """Insert a payment record. Re-inserting the same payment_id returns the existing row."""
        existing = self.get_by_payment_id(payment_id)
        if existing:
            return existing

        record = PaymentRecord(
            payment_id=payment_id,
            email=email,
            article_slug=article_slug,
            paid_at=paid_at or datetime.now(timezone.utc),
        )
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
            return record
        except IntegrityError:
            # A concurrent delivery inserted the same payment first
            self.db.rollback()
            existing = self.get_by_payment_id(payment_id)
            if existing:
                return existing
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            raise TransientStoreError(f"Payment store unavailable: {type(e).__name__}") from e


# ============================================================================
# WEBHOOK EVENT LOG
# ============================================================================

def get_payment_event(payment_id: str, db: Session) -> Optional[PaymentEvent]:
    try:
        return db.query(PaymentEvent).filter(PaymentEvent.payment_id == payment_id).first()
    except SQLAlchemyError as e:
        db.rollback()
        raise TransientStoreError(f"Event log unavailable: {type(e).__name__}") from e


def log_payment_event(
    payment_id: str,
    event_type: str,
    db: Session,
    email: Optional[str] = None,
    article_slug: Optional[str] = None
) -> PaymentEvent:
    """Get or create the processing log row for a payment"""
    payment_event = get_payment_event(payment_id, db)
    if payment_event:
        return payment_event

    payment_event = PaymentEvent(
        payment_id=payment_id,
        event_type=event_type,
        email=email,
        article_slug=article_slug,
        processed=False
    )
    try:
        db.add(payment_event)
        db.commit()
        db.refresh(payment_event)
        return payment_event
    except IntegrityError:
        db.rollback()
        payment_event = get_payment_event(payment_id, db)
        if payment_event:
            return payment_event
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise TransientStoreError(f"Event log unavailable: {type(e).__name__}") from e


def mark_payment_event_processed(payment_id: str, db: Session, error_message: str = None) -> None:
    try:
        payment_event = db.query(PaymentEvent).filter(PaymentEvent.payment_id == payment_id).first()
        if payment_event:
            payment_event.processed = True
            payment_event.processed_at = datetime.now(timezone.utc)
            payment_event.error_message = error_message
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise TransientStoreError(f"Event log unavailable: {type(e).__name__}") from e
