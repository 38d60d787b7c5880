"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY


def _counter(name: str, documentation: str, labelnames=()):
    # Re-importing the module (e.g. under test reloads) must not register twice
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


# Token metrics
tokens_issued_counter = _counter(
    'paywall_tokens_issued_total',
    'Total number of access tokens issued or renewed',
    ['reason']
)

# Access gate metrics
access_decisions_counter = _counter(
    'paywall_access_decisions_total',
    'Access gate decisions',
    ['decision', 'state']
)

# Webhook metrics
webhook_events_counter = _counter(
    'paywall_webhook_events_total',
    'Payment webhook deliveries by outcome',
    ['status']
)

# Notification metrics
notification_failures_counter = _counter(
    'paywall_notification_failures_total',
    'Magic link emails that could not be delivered',
    ['provider']
)

resend_requests_counter = _counter(
    'paywall_resend_requests_total',
    'Magic link resend requests by outcome',
    ['outcome']
)
