#!/usr/bin/env python3
"""
Webhook Event Reconciler
Applies verified Stripe and PayPal webhook events to the record store.

Each handler performs every lookup before its first write so that an event
which fails part way leaves no partial state behind.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from src.db.record_store import RecordStore, UserRecord
from src.schemas.payments import (
    OrderStatus,
    PaymentProvider,
    SubscriptionStatus,
    WebhookProcessingResult,
)
from src.services.prometheus_metrics import record_webhook_event
from src.services.webhook_verification import VerifiedEvent
from src.utils.security_validators import sanitize_for_logging
from src.utils.sentry_context import capture_payment_error

logger = logging.getLogger(__name__)


def _metadata_user_id(obj: dict[str, Any]) -> str | None:
    metadata = obj.get("metadata") or {}
    return metadata.get("userId") or metadata.get("user_id")


class EventReconciler:
    """Maps verified provider events onto record store transitions."""

    def __init__(self, store: RecordStore):
        self.store = store
        self._handlers: dict[str, Callable[[VerifiedEvent], str]] = {
            # Stripe
            "checkout.session.completed": self._handle_checkout_completed,
            "invoice.payment_succeeded": self._handle_invoice_paid,
            "invoice.paid": self._handle_invoice_paid,
            "customer.subscription.created": self._handle_subscription_change,
            "customer.subscription.updated": self._handle_subscription_change,
            "customer.subscription.deleted": self._handle_subscription_change,
            # PayPal
            "PAYMENT.CAPTURE.COMPLETED": self._handle_paypal_capture_completed,
            "CHECKOUT.ORDER.APPROVED": self._handle_paypal_order_approved,
        }

    def reconcile(self, event: VerifiedEvent) -> WebhookProcessingResult:
        """
        Apply one event to the store.

        Never raises: failures are logged, reported to Sentry and returned as
        ``success=False``.
        """
        provider = event.provider.value
        logger.info(f"Processing {provider} webhook: {event.type} (ID: {event.id})")

        handler = self._handlers.get(event.type)
        if handler is None:
            logger.info(f"Ignoring unhandled {provider} event type: {event.type}")
            record_webhook_event(provider, "other", "ignored")
            return WebhookProcessingResult(
                success=True,
                provider=event.provider,
                event_type=event.type,
                event_id=event.id,
                message=f"Event {event.type} ignored",
                processed_at=datetime.now(UTC),
            )

        try:
            message = handler(event)
        except Exception as e:
            logger.error(
                f"Webhook processing error for {event.type} (ID: {event.id}): {e}", exc_info=True
            )
            capture_payment_error(
                e,
                operation="webhook_reconcile",
                provider=provider,
                details={"event_type": event.type, "event_id": event.id},
            )
            record_webhook_event(provider, event.type, "failed")
            return WebhookProcessingResult(
                success=False,
                provider=event.provider,
                event_type=event.type,
                event_id=event.id,
                message="Webhook processing failed",
                handled=True,
                processed_at=datetime.now(UTC),
            )

        record_webhook_event(provider, event.type, "processed")
        return WebhookProcessingResult(
            success=True,
            provider=event.provider,
            event_type=event.type,
            event_id=event.id,
            message=message,
            handled=True,
            processed_at=datetime.now(UTC),
        )

    # ==================== Stripe ====================

    def _handle_checkout_completed(self, event: VerifiedEvent) -> str:
        session = event.data
        session_id = session.get("id")
        customer_id = session.get("customer")
        subscription_id = session.get("subscription")
        user_id = _metadata_user_id(session) or session.get("client_reference_id")

        subscriber: UserRecord | None = None
        assign_customer = False
        if subscription_id:
            subscriber = self.store.find_user_by_customer_id(customer_id)
            if subscriber is None and customer_id and user_id:
                # First sighting of this customer; bind it to the user named in metadata
                subscriber = self.store.get_user(user_id)
                assign_customer = subscriber is not None

        if assign_customer:
            self.store.assign_customer_id(subscriber.user_id, customer_id)

        if session_id:
            amount_total = session.get("amount_total")
            self.store.upsert_order(
                session_id,
                provider=PaymentProvider.STRIPE,
                user_id=user_id,
                status=OrderStatus.COMPLETED.value,
                amount=str(amount_total) if amount_total is not None else None,
                currency=session.get("currency"),
            )

        if not subscription_id:
            return f"Checkout session {session_id} completed"

        if subscriber is None:
            logger.warning(
                f"No user found for customer {sanitize_for_logging(str(customer_id))} "
                f"on checkout session {session_id}"
            )
            return f"Checkout session {session_id} completed; no matching user"

        self.store.set_subscription(
            subscriber.user_id, subscription_id, SubscriptionStatus.ACTIVE.value
        )
        logger.info(
            f"Subscription {subscription_id} activated for user {subscriber.user_id} "
            f"via checkout session {session_id}"
        )
        return f"Subscription {subscription_id} activated for user {subscriber.user_id}"

    def _handle_invoice_paid(self, event: VerifiedEvent) -> str:
        invoice = event.data
        logger.info(
            f"Invoice {invoice.get('id')} paid: customer={invoice.get('customer')}, "
            f"subscription={invoice.get('subscription')}, amount={invoice.get('amount_paid')}"
        )
        return f"Invoice {invoice.get('id')} recorded"

    def _handle_subscription_change(self, event: VerifiedEvent) -> str:
        subscription = event.data
        subscription_id = subscription.get("id")
        customer_id = subscription.get("customer")
        status = subscription.get("status")
        if not status and event.type == "customer.subscription.deleted":
            status = SubscriptionStatus.CANCELED.value

        user = self.store.find_user_by_customer_id(customer_id)
        assign_customer = False
        if user is None:
            fallback_id = _metadata_user_id(subscription)
            if fallback_id:
                user = self.store.get_user(fallback_id)
                assign_customer = user is not None and bool(customer_id)

        if user is None:
            logger.warning(
                f"No user found for customer {sanitize_for_logging(str(customer_id))} "
                f"on {event.type} ({subscription_id})"
            )
            return f"Subscription {subscription_id}: no matching user"

        status = status or user.subscription_status
        if assign_customer:
            self.store.assign_customer_id(user.user_id, customer_id)
        self.store.set_subscription(user.user_id, subscription_id, status)
        logger.info(f"Subscription {subscription_id} for user {user.user_id} is now {status}")
        return f"Subscription {subscription_id} set to {status} for user {user.user_id}"

    # ==================== PayPal ====================

    def _handle_paypal_capture_completed(self, event: VerifiedEvent) -> str:
        capture = event.data
        related_ids = (capture.get("supplementary_data") or {}).get("related_ids") or {}
        order_id = related_ids.get("order_id") or capture.get("id")
        if not order_id:
            raise ValueError("PayPal capture event carries no order or capture id")

        amount = capture.get("amount") or {}
        self.store.upsert_order(
            order_id,
            provider=PaymentProvider.PAYPAL,
            user_id=capture.get("custom_id"),
            status=OrderStatus.PAYPAL_COMPLETED.value,
            amount=amount.get("value"),
            currency=amount.get("currency_code"),
            capture=capture,
        )
        logger.info(f"PayPal order {order_id} captured (capture {capture.get('id')})")
        return f"PayPal order {order_id} completed"

    def _handle_paypal_order_approved(self, event: VerifiedEvent) -> str:
        order = event.data
        order_id = order.get("id")
        if not order_id:
            raise ValueError("PayPal order event carries no order id")

        purchase_units = order.get("purchase_units") or [{}]
        existing = self.store.get_order(order_id)
        if existing is not None and existing.status == OrderStatus.PAYPAL_COMPLETED.value:
            # Late delivery; never move a captured order back to APPROVED
            status = None
        else:
            status = OrderStatus.PAYPAL_APPROVED.value

        self.store.upsert_order(
            order_id,
            provider=PaymentProvider.PAYPAL,
            user_id=purchase_units[0].get("custom_id"),
            status=status,
        )
        if status is None:
            logger.info(f"PayPal order {order_id} approval arrived after capture; status kept")
            return f"PayPal order {order_id} already completed"
        logger.info(f"PayPal order {order_id} approved")
        return f"PayPal order {order_id} approved"
