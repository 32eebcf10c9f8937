#!/usr/bin/env python3
"""
Payment Routes
Stripe checkout and payment intents, PayPal orders, and provider webhooks.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import stripe
from fastapi import APIRouter, Depends, Header, Query, Request

from src.db.record_store import CustomerIdConflictError, RecordStore
from src.schemas.payments import (
    CapturePayPalOrderRequest,
    CheckoutMode,
    CreateCheckoutSessionRequest,
    CreatePaymentIntentRequest,
    CreatePayPalOrderRequest,
    OrderStatus,
    PaymentProvider,
)
from src.services.payments import StripeService, stripe_error_message
from src.services.paypal_client import PayPalAPIError, PayPalClient
from src.services.prometheus_metrics import record_webhook_event
from src.services.reconciler import EventReconciler
from src.services.webhook_verification import (
    WebhookSettings,
    WebhookVerificationError,
    parse_paypal_event,
    verify_stripe_event,
)
from src.utils.exceptions import APIExceptions, ErrorCode
from src.utils.security_validators import sanitize_for_logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payments"])


# ==================== Dependencies ====================


def get_record_store(request: Request) -> RecordStore:
    return request.app.state.record_store


def get_stripe_service(request: Request) -> StripeService:
    return request.app.state.stripe_service


def get_paypal_client(request: Request) -> PayPalClient:
    return request.app.state.paypal_client


def get_reconciler(request: Request) -> EventReconciler:
    return request.app.state.reconciler


def get_webhook_settings(request: Request) -> WebhookSettings:
    return request.app.state.webhook_settings


def _parse_paypal_amount(value: Any) -> str:
    """Normalise a PayPal amount to a two-decimal string; rejects non-positive values."""
    if value is None or isinstance(value, bool):
        raise APIExceptions.invalid_amount(value)
    try:
        amount = Decimal(str(value).strip()).quantize(Decimal("0.01"))
    except InvalidOperation:
        raise APIExceptions.invalid_amount(value) from None
    if not amount.is_finite() or amount <= 0:
        raise APIExceptions.invalid_amount(value)
    return f"{amount:.2f}"


# ==================== Stripe ====================


@router.post("/create-checkout-session")
async def create_checkout_session(
    request: CreateCheckoutSessionRequest,
    store: RecordStore = Depends(get_record_store),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Create a Stripe-hosted checkout session.

    Subscription mode needs ``userId`` and a recurring ``priceId``. Payment
    mode takes either ``priceId`` or ``amount`` (smallest currency unit) with
    an optional ``productName``. Known users are given a Stripe customer on
    their first checkout so later subscription webhooks can be matched.

    Example request body:
    {
        "userId": "u1",
        "email": "u1@example.com",
        "priceId": "price_123",
        "mode": "subscription"
    }
    """
    try:
        mode = CheckoutMode(request.mode)
    except ValueError:
        raise APIExceptions.bad_request(
            ErrorCode.INVALID_MODE,
            f"Invalid mode: {request.mode!r}; expected 'payment' or 'subscription'",
            field="mode",
        ) from None

    user_id = request.user_id
    if mode == CheckoutMode.SUBSCRIPTION:
        if not user_id:
            raise APIExceptions.missing_field("userId", code=ErrorCode.MISSING_USER_ID)
        if not request.price_id:
            raise APIExceptions.missing_field("priceId", code=ErrorCode.MISSING_PRICE)
    elif not request.price_id and request.amount is None:
        raise APIExceptions.missing_field("priceId", code=ErrorCode.MISSING_PRICE)

    if not request.price_id and request.amount is not None and request.amount <= 0:
        raise APIExceptions.invalid_amount(request.amount)

    logger.info(
        "Creating checkout session for user %s, mode: %s, price: %s, amount: %s",
        sanitize_for_logging(user_id),
        mode.value,
        sanitize_for_logging(request.price_id),
        sanitize_for_logging(str(request.amount)),
    )

    customer_id = None
    email = request.email
    try:
        if user_id:
            user = store.upsert_user(user_id, email=request.email)
            email = user.email
            customer_id = user.stripe_customer_id
            if not customer_id:
                created_id = await asyncio.to_thread(
                    stripe_service.create_customer, email, user_id
                )
                # A concurrent checkout may have bound a customer while we waited
                current = store.get_user(user_id)
                if current is not None and current.stripe_customer_id:
                    logger.warning(
                        "Stripe customer %s for user %s is orphaned; reusing %s",
                        created_id,
                        sanitize_for_logging(user_id),
                        current.stripe_customer_id,
                    )
                    customer_id = current.stripe_customer_id
                else:
                    customer_id = created_id
                    try:
                        store.assign_customer_id(user_id, customer_id)
                    except CustomerIdConflictError as e:
                        logger.error(
                            f"Customer conflict for user {sanitize_for_logging(user_id)}: {e}"
                        )
                        raise APIExceptions.conflict(ErrorCode.CUSTOMER_CONFLICT, str(e)) from e

        session = await asyncio.to_thread(
            stripe_service.create_checkout_session,
            mode=mode,
            price_id=request.price_id,
            amount=request.amount,
            product_name=request.product_name,
            currency=request.currency,
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            customer_id=customer_id,
            user_id=user_id,
            email=email,
        )
    except stripe.StripeError as e:
        raise APIExceptions.provider_error(
            PaymentProvider.STRIPE.value, stripe_error_message(e)
        ) from e

    store.upsert_order(
        session.session_id,
        provider=PaymentProvider.STRIPE,
        user_id=user_id,
        status=session.status or OrderStatus.OPEN.value,
        amount=str(request.amount) if request.amount is not None else None,
        currency=request.currency,
    )

    logger.info(
        "Checkout session created for user %s: %s",
        sanitize_for_logging(user_id),
        sanitize_for_logging(session.session_id),
    )
    return {"url": session.url, "sessionId": session.session_id}


@router.get("/checkout-session/{session_id}")
async def get_checkout_session(
    session_id: str,
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Retrieve checkout session details from Stripe.

    Lets the success page confirm payment before the webhook arrives.
    """
    try:
        session = await asyncio.to_thread(stripe_service.retrieve_checkout_session, session_id)
    except stripe.InvalidRequestError as e:
        logger.warning(
            f"Checkout session lookup failed for {sanitize_for_logging(session_id)}: {e}"
        )
        raise APIExceptions.not_found(
            ErrorCode.SESSION_NOT_FOUND, "Checkout session", session_id
        ) from e
    except stripe.StripeError as e:
        raise APIExceptions.provider_error(
            PaymentProvider.STRIPE.value, stripe_error_message(e)
        ) from e

    return {
        "sessionId": session["id"],
        "status": session["status"],
        "paymentStatus": session["payment_status"],
        "mode": session["mode"],
        "customerId": session["customer"],
        "subscriptionId": session["subscription"],
        "amountTotal": session["amount_total"],
        "currency": session["currency"],
    }


@router.post("/create-payment-intent")
async def create_payment_intent(
    request: CreatePaymentIntentRequest,
    store: RecordStore = Depends(get_record_store),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """Create a payment intent for a one-time charge; returns its client secret."""
    if request.amount is None or request.amount <= 0:
        raise APIExceptions.invalid_amount(request.amount)

    try:
        intent = await asyncio.to_thread(
            stripe_service.create_payment_intent,
            request.amount,
            request.currency,
            request.user_id,
        )
    except stripe.StripeError as e:
        raise APIExceptions.provider_error(
            PaymentProvider.STRIPE.value, stripe_error_message(e)
        ) from e

    if request.user_id:
        store.upsert_user(request.user_id)
    store.upsert_order(
        intent.payment_intent_id,
        provider=PaymentProvider.STRIPE,
        user_id=request.user_id,
        status=intent.status or OrderStatus.CREATED.value,
        amount=str(request.amount),
        currency=request.currency,
    )
    return {"clientSecret": intent.client_secret, "paymentIntentId": intent.payment_intent_id}


@router.get("/subscription-status")
async def get_subscription_status(
    user_id: str | None = Query(None, alias="userId"),
    store: RecordStore = Depends(get_record_store),
):
    """Report the locally tracked subscription state; unknown users read as ``none``."""
    if not user_id:
        raise APIExceptions.missing_field("userId", code=ErrorCode.MISSING_USER_ID)

    user = store.get_user(user_id)
    if user is None:
        return {
            "userId": user_id,
            "subscriptionStatus": "none",
            "subscriptionId": None,
            "stripeCustomerId": None,
        }

    return {
        "userId": user.user_id,
        "subscriptionStatus": user.subscription_status,
        "subscriptionId": user.subscription_id,
        "stripeCustomerId": user.stripe_customer_id,
    }


@router.get("/orders/{order_id}")
async def get_order(order_id: str, store: RecordStore = Depends(get_record_store)):
    order = store.get_order(order_id)
    if order is None:
        raise APIExceptions.not_found(ErrorCode.ORDER_NOT_FOUND, "Order", order_id)

    return {
        "orderId": order.order_id,
        "provider": order.provider,
        "userId": order.user_id,
        "status": order.status,
        "amount": order.amount,
        "currency": order.currency,
        "capture": order.capture,
        "createdAt": order.created_at.isoformat(),
        "updatedAt": order.updated_at.isoformat(),
    }


# ==================== PayPal ====================


@router.post("/create-paypal-order")
async def create_paypal_order(
    request: CreatePayPalOrderRequest,
    store: RecordStore = Depends(get_record_store),
    paypal_client: PayPalClient = Depends(get_paypal_client),
):
    """Create a PayPal order and return the buyer approval URL."""
    amount = _parse_paypal_amount(request.amount)
    currency = request.currency.upper()

    logger.info(
        "Creating PayPal order for user %s: %s %s",
        sanitize_for_logging(request.user_id),
        amount,
        sanitize_for_logging(currency),
    )

    try:
        order = await paypal_client.create_order(
            amount=amount,
            currency=currency,
            description=request.description,
            user_id=request.user_id,
        )
    except PayPalAPIError as e:
        raise APIExceptions.provider_error(PaymentProvider.PAYPAL.value, e.message) from e

    if request.user_id:
        store.upsert_user(request.user_id)
    store.upsert_order(
        order.order_id,
        provider=PaymentProvider.PAYPAL,
        user_id=request.user_id,
        status=order.status or OrderStatus.PAYPAL_CREATED.value,
        amount=amount,
        currency=currency,
    )
    return {"orderId": order.order_id, "approvalUrl": order.approval_url}


@router.post("/capture-paypal-order")
async def capture_paypal_order(
    request: CapturePayPalOrderRequest,
    store: RecordStore = Depends(get_record_store),
    paypal_client: PayPalClient = Depends(get_paypal_client),
):
    """
    Capture an approved PayPal order.

    Orders created elsewhere are captured too; the local record is created
    from the capture result.
    """
    if not request.order_id:
        raise APIExceptions.missing_field("orderId", code=ErrorCode.MISSING_ORDER_ID)

    try:
        capture = await paypal_client.capture_order(request.order_id)
    except PayPalAPIError as e:
        raise APIExceptions.provider_error(PaymentProvider.PAYPAL.value, e.message) from e

    store.upsert_order(
        request.order_id,
        provider=PaymentProvider.PAYPAL,
        user_id=request.user_id,
        status=capture.get("status"),
        capture=capture,
    )
    return {"ok": True, "capture": capture}


# ==================== Webhooks ====================


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="stripe-signature"),
    settings: WebhookSettings = Depends(get_webhook_settings),
    reconciler: EventReconciler = Depends(get_reconciler),
):
    """
    Stripe webhook endpoint.

    Handled events:
    - checkout.session.completed - record the order, activate subscriptions
    - customer.subscription.created / updated / deleted - sync subscription status
    - invoice.paid / invoice.payment_succeeded - logged

    Anything else is acknowledged without changes. Payloads that fail
    signature verification are rejected with 400.
    """
    payload = await request.body()

    try:
        event = verify_stripe_event(
            payload, stripe_signature, settings.secret, settings.allow_unverified
        )
    except WebhookVerificationError as e:
        logger.error(f"Webhook validation failed: {e}")
        record_webhook_event(PaymentProvider.STRIPE.value, "unknown", "rejected")
        raise APIExceptions.webhook_verification_failed(str(e)) from e

    result = reconciler.reconcile(event)
    if not result.success:
        raise APIExceptions.webhook_processing_failed()

    logger.info(f"Webhook processed: {result.event_type} - {result.message}")
    return {"received": True}


@router.post("/paypal-webhook")
async def paypal_webhook(
    request: Request,
    reconciler: EventReconciler = Depends(get_reconciler),
):
    """PayPal webhook endpoint. Deliveries are not signature-checked."""
    payload = await request.body()

    try:
        event = parse_paypal_event(payload)
    except WebhookVerificationError as e:
        logger.error(f"PayPal webhook rejected: {e}")
        record_webhook_event(PaymentProvider.PAYPAL.value, "unknown", "rejected")
        raise APIExceptions.webhook_verification_failed(str(e)) from e

    result = reconciler.reconcile(event)
    if not result.success:
        raise APIExceptions.webhook_processing_failed()

    return {"ok": True}
