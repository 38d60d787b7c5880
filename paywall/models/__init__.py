"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from paywall.models.base import Base
from paywall.models.payment_record import PaymentRecord
from paywall.models.payment_event import PaymentEvent

# Export all for convenience
__all__ = ["Base", "PaymentRecord", "PaymentEvent"]
