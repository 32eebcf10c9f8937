import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class PaymentProvider(str, Enum):  # noqa: UP042
    STRIPE = "stripe"
    PAYPAL = "paypal"


class SubscriptionStatus(str, Enum):  # noqa: UP042
    """Subscription states as reported by Stripe, plus the local default."""

    NONE = "none"
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"


class CheckoutMode(str, Enum):  # noqa: UP042
    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"


class OrderStatus(str, Enum):  # noqa: UP042
    CREATED = "created"
    OPEN = "open"
    COMPLETED = "completed"
    # PayPal reports upper-case order states
    PAYPAL_CREATED = "CREATED"
    PAYPAL_APPROVED = "APPROVED"
    PAYPAL_COMPLETED = "COMPLETED"


PAYPAL_ORDER_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]{1,64}\Z")


# ==================== Requests ====================


class CreateCheckoutSessionRequest(BaseModel):
    user_id: str | None = Field(None, alias="userId")
    email: str | None = None
    price_id: str | None = Field(None, alias="priceId")
    amount: int | None = Field(None, description="Amount in the smallest currency unit")
    product_name: str | None = Field(None, alias="productName")
    currency: str | None = None
    mode: str = CheckoutMode.PAYMENT.value
    success_url: str | None = None
    cancel_url: str | None = None

    class Config:
        populate_by_name = True

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        """Validate email format if provided"""
        if v is not None and "@" not in v:
            raise ValueError("Invalid email format")
        return v


class CreatePaymentIntentRequest(BaseModel):
    amount: int | None = None
    currency: str | None = None
    user_id: str | None = Field(None, alias="userId")

    class Config:
        populate_by_name = True


class CreatePayPalOrderRequest(BaseModel):
    user_id: str | None = Field(None, alias="userId")
    amount: str | float | None = None
    currency: str = "USD"
    description: str | None = None

    class Config:
        populate_by_name = True


class CapturePayPalOrderRequest(BaseModel):
    order_id: str | None = Field(None, alias="orderId")
    user_id: str | None = Field(None, alias="userId")

    class Config:
        populate_by_name = True

    @field_validator("order_id")
    @classmethod
    def validate_order_id(cls, v):
        """PayPal order ids are short alphanumeric tokens"""
        if v and not PAYPAL_ORDER_ID_PATTERN.match(v):
            raise ValueError("Invalid PayPal order id")
        return v


# ==================== Provider results ====================


class CheckoutSessionResult(BaseModel):
    session_id: str
    url: str | None = None
    status: str | None = None


class PaymentIntentResult(BaseModel):
    payment_intent_id: str
    client_secret: str | None = None
    status: str | None = None


class PayPalOrderResult(BaseModel):
    order_id: str
    approval_url: str | None = None
    status: str | None = None


# ==================== Webhooks ====================


class WebhookProcessingResult(BaseModel):
    success: bool
    provider: PaymentProvider
    event_type: str
    event_id: str | None = None
    message: str
    handled: bool = False
    processed_at: datetime
