"""
Webhook payload verification.

Stripe deliveries are checked against the endpoint signing secret before they
are parsed. PayPal deliveries are parsed as-is.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import stripe

from src.config import Config
from src.schemas.payments import PaymentProvider

logger = logging.getLogger(__name__)

# Stripe's default replay window
SIGNATURE_TOLERANCE_SECONDS = 300


class WebhookVerificationError(Exception):
    """Raised when a webhook payload cannot be trusted or parsed."""


@dataclass
class VerifiedEvent:
    id: str | None
    type: str
    data: dict[str, Any]
    provider: PaymentProvider
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


def _load_json(payload: bytes | str) -> dict[str, Any]:
    try:
        event = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise WebhookVerificationError(f"Invalid payload: {e}") from e
    if not isinstance(event, dict):
        raise WebhookVerificationError("Invalid payload: expected a JSON object")
    return event


def verify_stripe_event(
    payload: bytes,
    signature: str | None,
    secret: str | None,
    allow_unverified: bool = False,
) -> VerifiedEvent:
    """
    Verify and parse a Stripe webhook delivery.

    Args:
        payload: Raw request body, exactly as received
        signature: Value of the ``Stripe-Signature`` header
        secret: Endpoint signing secret (``whsec_...``)
        allow_unverified: Accept unsigned payloads when no secret is configured

    Returns:
        VerifiedEvent with ``data`` set to the event's ``data.object``

    Raises:
        WebhookVerificationError: On a missing secret, header or signature
            mismatch, or a payload that is not a JSON object
    """
    if secret:
        if not signature:
            raise WebhookVerificationError("Missing Stripe-Signature header")
        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            stripe.WebhookSignature.verify_header(
                body, signature, secret, SIGNATURE_TOLERANCE_SECONDS
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Stripe signature verification failed: %s", e)
            raise WebhookVerificationError(str(e)) from e
        except UnicodeDecodeError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}") from e
    elif allow_unverified:
        logger.warning("STRIPE_WEBHOOK_SECRET not set - accepting unverified Stripe webhook")
    else:
        raise WebhookVerificationError("Webhook secret not configured")

    event = _load_json(payload)
    event_type = event.get("type")
    if not event_type:
        raise WebhookVerificationError("Invalid payload: missing event type")

    data = (event.get("data") or {}).get("object") or {}
    return VerifiedEvent(
        id=event.get("id"),
        type=event_type,
        data=data,
        provider=PaymentProvider.STRIPE,
        raw=event,
    )


def parse_paypal_event(payload: bytes) -> VerifiedEvent:
    """Parse a PayPal webhook delivery. PayPal signatures are not checked."""
    event = _load_json(payload)
    return VerifiedEvent(
        id=event.get("id"),
        type=event.get("event_type") or "",
        data=event.get("resource") or {},
        provider=PaymentProvider.PAYPAL,
        raw=event,
    )


@dataclass
class WebhookSettings:
    """Stripe webhook verification settings resolved at startup."""

    secret: str | None = None
    allow_unverified: bool = False

    @classmethod
    def from_config(cls) -> "WebhookSettings":
        return cls(
            secret=Config.STRIPE_WEBHOOK_SECRET,
            allow_unverified=Config.unverified_webhooks_allowed(),
        )
