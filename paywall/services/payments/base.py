"""Abstract base class for payment providers"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class PaymentData:
    """Normalized fields of a completed, paid checkout"""
    email: str
    article_slug: str
    payment_id: str
    event_type: str


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


class BasePaymentProvider(ABC):
    """Interface contract for payment providers.

    Implementations are constructed explicitly with their credentials and
    injected into the handlers that need them.
    """

    name: str = ""

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: str, secret: str) -> bool:
        """Return True if ``signature`` is a valid signature of ``payload`` under ``secret``."""

    @abstractmethod
    def construct_event(self, payload: bytes, signature: str, secret: str) -> Any:
        """Verify the signature and parse the event.

        Raises:
            AuthenticityError: If the signature does not verify
            ValidationError: If the payload is not a parseable event
        """

    @abstractmethod
    def event_type(self, event: Any) -> str:
        """Provider event type string"""

    @abstractmethod
    def extract_payment(self, event: Any) -> Optional[PaymentData]:
        """Normalized payment data for a relevant event, None for events that should be ignored.

        Raises:
            PaymentMetadataError: If the event is a completed payment but lacks email or article
        """

    @abstractmethod
    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        customer_email: Optional[str] = None
    ) -> CheckoutSession:
        """Create a hosted checkout session and return its redirect URL"""
