"""Exception taxonomy for the paywall service.

Routes translate these into HTTP responses in ``paywall.main``. Messages on
security-relevant errors are generic on purpose and must never carry secrets.
"""


class PaywallError(Exception):
    """Base class for all paywall errors"""

    status_code = 500
    public_message = "Internal server error"


class ConfigurationError(PaywallError):
    """A required secret, endpoint or provider name is missing or invalid"""


class AuthenticityError(PaywallError):
    """An inbound webhook failed signature verification"""

    status_code = 400
    public_message = "Invalid signature"


class ValidationError(PaywallError):
    """Malformed or incomplete request payload"""

    status_code = 400

    @property
    def public_message(self) -> str:
        return str(self) or "Invalid request"


class PaymentMetadataError(ValidationError):
    """A paid checkout event cannot be turned into a grant (missing email or article)"""

    def __init__(self, message: str, payment_id: str = None):
        super().__init__(message)
        self.payment_id = payment_id


class NotFoundOrExpired(PaywallError):
    """Token is absent, expired or not usable for the requested article"""

    status_code = 401
    public_message = "Access link is invalid or has expired"


class TransientStoreError(PaywallError):
    """A backing store timed out or is unavailable; safe to retry"""

    status_code = 500
    public_message = "Service temporarily unavailable, please retry"


class DeliveryError(PaywallError):
    """A notification could not be delivered"""


class WebhookInProgress(PaywallError):
    """Another delivery of the same payment is currently being processed"""

    status_code = 409
    public_message = "Payment is already being processed"


class WebhookProcessingError(PaywallError):
    """A webhook failed before its grant was durable; the provider should redeliver"""

    public_message = "Webhook processing failed, please retry"


class CheckoutError(PaywallError):
    """The payment provider could not create a checkout session"""

    public_message = "Failed to create checkout session"
