"""PaymentRecord model"""
from sqlalchemy import Column, Integer, String, DateTime, Index
from datetime import datetime, timezone
from paywall.models.base import Base


class PaymentRecord(Base):
    """Durable proof that an email paid for an article.

    Append-only: rows are never updated or deleted. ``payment_id`` is the
    provider's identifier and makes inserts idempotent.
    """
    __tablename__ = "payment_records"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(320), nullable=False)
    article_slug = Column(String(200), nullable=False)
    paid_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index("ix_payment_records_email_article", "email", "article_slug"),
    )
