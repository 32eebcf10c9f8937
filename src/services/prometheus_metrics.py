"""
Prometheus metrics for the payment broker.

This module initializes and exposes Prometheus metrics for monitoring:
- Webhook deliveries by provider, event type and outcome
- Outbound provider calls (Stripe / PayPal) by operation and outcome
"""

import logging

from prometheus_client import Counter

logger = logging.getLogger(__name__)

# ==================== Webhook Metrics ====================
webhook_events = Counter(
    "paybridge_webhook_events_total",
    "Webhook events received, by provider, event type and outcome",
    ["provider", "event_type", "outcome"],
)

# ==================== Provider Metrics ====================
provider_requests = Counter(
    "paybridge_provider_requests_total",
    "Outbound payment provider calls, by provider, operation and outcome",
    ["provider", "operation", "outcome"],
)


def record_webhook_event(provider: str, event_type: str, outcome: str) -> None:
    """Record a webhook delivery outcome ("processed", "ignored", "rejected", "failed")."""
    webhook_events.labels(provider=provider, event_type=event_type, outcome=outcome).inc()


def record_provider_request(provider: str, operation: str, success: bool) -> None:
    outcome = "success" if success else "error"
    provider_requests.labels(provider=provider, operation=operation, outcome=outcome).inc()
