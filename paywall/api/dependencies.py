"""FastAPI dependencies that construct per-request collaborators"""
from fastapi import Depends
from sqlalchemy.orm import Session

from paywall.db.payment_store import PaymentRecordStore
from paywall.db.redis import get_redis
from paywall.db.session import get_db
from paywall.db.token_store import TokenStore
from paywall.services.access_gate import AccessGate
from paywall.services.email.base import BaseNotifier
from paywall.services.email.registry import create_notifier
from paywall.services.payments.base import BasePaymentProvider
from paywall.services.payments.registry import create_payment_provider
from paywall.services.token_service import TokenService


def get_token_service(redis_client=Depends(get_redis)) -> TokenService:
    return TokenService(TokenStore(redis_client))


def get_access_gate(
    tokens: TokenService = Depends(get_token_service),
    db: Session = Depends(get_db)
) -> AccessGate:
    return AccessGate(tokens, PaymentRecordStore(db))


def get_payment_provider() -> BasePaymentProvider:
    return create_payment_provider()


def get_notifier() -> BaseNotifier:
    return create_notifier()
