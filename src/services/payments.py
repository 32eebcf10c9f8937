#!/usr/bin/env python3
"""
Stripe Service
Thin call-through to the Stripe SDK for customers, checkout sessions and
payment intents. No retries; Stripe errors propagate to the caller.
"""

import logging
from typing import Any

import stripe

from src.config import Config
from src.schemas.payments import (
    CheckoutMode,
    CheckoutSessionResult,
    PaymentIntentResult,
    PaymentProvider,
)
from src.services.prometheus_metrics import record_provider_request
from src.utils.sentry_context import capture_payment_error

logger = logging.getLogger(__name__)


def stripe_error_message(error: Exception) -> str:
    """Return the message Stripe reported, without the SDK's request-id prefix."""
    user_message = getattr(error, "user_message", None)
    if user_message:
        return user_message
    return str(error)


class StripeService:
    """Service class for handling Stripe payment operations"""

    def __init__(
        self,
        api_key: str | None = None,
        default_currency: str | None = None,
        base_url: str | None = None,
    ):
        """Initialize Stripe with API key from environment"""
        self.api_key = api_key or Config.STRIPE_SECRET_KEY
        self.default_currency = (default_currency or Config.DEFAULT_CURRENCY).lower()
        self.base_url = (base_url or Config.BASE_URL).rstrip("/")

        if not self.api_key:
            # Calls will fail with Stripe's own authentication error
            logger.warning("STRIPE_SECRET_KEY not configured - Stripe calls will fail")

        # Set Stripe API key
        stripe.api_key = self.api_key

        logger.info("Stripe service initialized")

    @staticmethod
    def _get_stripe_object_value(obj: Any, attr: str) -> Any:
        """
        Safely extract a field from a Stripe object (dict-like or attribute-based).
        """
        if obj is None:
            return None

        if isinstance(obj, dict):
            return obj.get(attr)

        if hasattr(obj, attr):
            return getattr(obj, attr)

        try:
            return obj[attr]
        except (KeyError, TypeError, IndexError):
            return None

    def _report_failure(
        self, error: Exception, operation: str, user_id: str | None, details: dict[str, Any]
    ) -> None:
        logger.error(f"Stripe error during {operation}: {stripe_error_message(error)}")
        record_provider_request(PaymentProvider.STRIPE.value, operation, success=False)
        capture_payment_error(
            error,
            operation=operation,
            provider=PaymentProvider.STRIPE.value,
            user_id=user_id,
            details=details,
        )

    # ==================== Customers ====================

    def create_customer(self, email: str | None, user_id: str) -> str:
        """Create a Stripe customer tagged with our user id; returns the customer id."""
        params: dict[str, Any] = {"metadata": {"userId": user_id}}
        if email:
            params["email"] = email

        try:
            customer = stripe.Customer.create(**params)
        except stripe.StripeError as e:
            self._report_failure(e, "create_customer", user_id, {})
            raise

        customer_id = self._get_stripe_object_value(customer, "id")
        record_provider_request(PaymentProvider.STRIPE.value, "create_customer", success=True)
        logger.info(f"Stripe customer created: {customer_id} for user {user_id}")
        return customer_id

    # ==================== Checkout Sessions ====================

    def _default_success_url(self) -> str:
        return f"{self.base_url}/success?session_id={{CHECKOUT_SESSION_ID}}"

    def _default_cancel_url(self) -> str:
        return f"{self.base_url}/cancel"

    def create_checkout_session(
        self,
        *,
        mode: CheckoutMode = CheckoutMode.PAYMENT,
        price_id: str | None = None,
        amount: int | None = None,
        product_name: str | None = None,
        currency: str | None = None,
        success_url: str | None = None,
        cancel_url: str | None = None,
        customer_id: str | None = None,
        user_id: str | None = None,
        email: str | None = None,
    ) -> CheckoutSessionResult:
        """
        Create a Stripe-hosted checkout session.

        Either ``price_id`` (a Stripe Price) or ``amount`` in the smallest
        currency unit must be supplied. Subscription mode needs a recurring
        ``price_id``.
        """
        if price_id:
            line_item: dict[str, Any] = {"price": price_id, "quantity": 1}
        elif amount is not None:
            line_item = {
                "price_data": {
                    "currency": (currency or self.default_currency).lower(),
                    "unit_amount": amount,
                    "product_data": {"name": product_name or "Payment"},
                },
                "quantity": 1,
            }
        else:
            raise ValueError("Either price_id or amount is required")

        metadata = {"userId": user_id} if user_id else {}
        params: dict[str, Any] = {
            "mode": mode.value,
            "line_items": [line_item],
            "success_url": success_url or self._default_success_url(),
            "cancel_url": cancel_url or self._default_cancel_url(),
            "metadata": metadata,
        }
        if user_id:
            params["client_reference_id"] = user_id
        if customer_id:
            params["customer"] = customer_id
        elif email:
            params["customer_email"] = email

        # Carry the user id onto the objects the session spawns
        if mode == CheckoutMode.SUBSCRIPTION:
            params["subscription_data"] = {"metadata": dict(metadata)}
        else:
            params["payment_intent_data"] = {"metadata": dict(metadata)}

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            self._report_failure(
                e,
                "checkout_session",
                user_id,
                {"mode": mode.value, "price_id": price_id, "amount": amount},
            )
            raise

        record_provider_request(PaymentProvider.STRIPE.value, "checkout_session", success=True)
        session_id = self._get_stripe_object_value(session, "id")
        logger.info(f"Checkout session created: {session_id} (mode={mode.value}, user={user_id})")

        return CheckoutSessionResult(
            session_id=session_id,
            url=self._get_stripe_object_value(session, "url"),
            status=self._get_stripe_object_value(session, "status"),
        )

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """Retrieve checkout session details"""
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            self._report_failure(e, "retrieve_session", None, {"session_id": session_id})
            raise

        record_provider_request(PaymentProvider.STRIPE.value, "retrieve_session", success=True)
        return {
            field: self._get_stripe_object_value(session, field)
            for field in (
                "id",
                "status",
                "payment_status",
                "mode",
                "customer",
                "subscription",
                "amount_total",
                "currency",
            )
        }

    # ==================== Payment Intents ====================

    def create_payment_intent(
        self, amount: int, currency: str | None = None, user_id: str | None = None
    ) -> PaymentIntentResult:
        """Create a Stripe payment intent for a one-time charge"""
        params: dict[str, Any] = {
            "amount": amount,
            "currency": (currency or self.default_currency).lower(),
            "automatic_payment_methods": {"enabled": True},
        }
        if user_id:
            params["metadata"] = {"userId": user_id}

        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            self._report_failure(
                e, "payment_intent", user_id, {"amount": amount, "currency": params["currency"]}
            )
            raise

        record_provider_request(PaymentProvider.STRIPE.value, "payment_intent", success=True)
        intent_id = self._get_stripe_object_value(intent, "id")
        logger.info(f"Payment intent created: {intent_id} (amount={amount} {params['currency']})")

        return PaymentIntentResult(
            payment_intent_id=intent_id,
            client_secret=self._get_stripe_object_value(intent, "client_secret"),
            status=self._get_stripe_object_value(intent, "status"),
        )
