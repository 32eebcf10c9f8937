"""
Tests for the Stripe call-through service.
"""

from unittest.mock import MagicMock, patch

import pytest
import stripe

from src.schemas.payments import CheckoutMode
from src.services.payments import StripeService, stripe_error_message


@pytest.fixture
def stripe_service():
    return StripeService(
        api_key="sk_test_unit", default_currency="USD", base_url="https://shop.example.com/"
    )


class TestCreateCustomer:
    """Test Stripe customer creation"""

    def test_returns_customer_id(self, stripe_service):
        with patch("stripe.Customer.create") as mock_create:
            mock_create.return_value = {"id": "cus_123"}

            customer_id = stripe_service.create_customer("u1@example.com", "u1")

        assert customer_id == "cus_123"
        mock_create.assert_called_once_with(email="u1@example.com", metadata={"userId": "u1"})

    def test_email_optional(self, stripe_service):
        with patch("stripe.Customer.create") as mock_create:
            mock_create.return_value = {"id": "cus_456"}
            stripe_service.create_customer(None, "u2")

        assert "email" not in mock_create.call_args.kwargs


class TestCreateCheckoutSession:
    """Test checkout session creation"""

    def test_subscription_with_price(self, stripe_service):
        session = MagicMock()
        session.id = "cs_test_1"
        session.url = "https://checkout.stripe.com/c/pay/cs_test_1"
        session.status = "open"
        session.customer = "cus_1"

        with patch("stripe.checkout.Session.create") as mock_create:
            mock_create.return_value = session

            result = stripe_service.create_checkout_session(
                mode=CheckoutMode.SUBSCRIPTION,
                price_id="price_1",
                customer_id="cus_1",
                user_id="u1",
            )

        assert result.session_id == "cs_test_1"
        assert result.url == "https://checkout.stripe.com/c/pay/cs_test_1"
        assert result.status == "open"

        params = mock_create.call_args.kwargs
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_1", "quantity": 1}]
        assert params["customer"] == "cus_1"
        assert params["metadata"] == {"userId": "u1"}
        assert params["client_reference_id"] == "u1"
        assert params["subscription_data"] == {"metadata": {"userId": "u1"}}
        assert params["success_url"] == (
            "https://shop.example.com/success?session_id={CHECKOUT_SESSION_ID}"
        )
        assert params["cancel_url"] == "https://shop.example.com/cancel"

    def test_payment_with_amount(self, stripe_service):
        with patch("stripe.checkout.Session.create") as mock_create:
            mock_create.return_value = {"id": "cs_2", "url": "https://x", "status": "open"}

            stripe_service.create_checkout_session(
                amount=2500,
                product_name="Credits",
                email="buyer@example.com",
                success_url="https://app/ok",
                cancel_url="https://app/no",
            )

        params = mock_create.call_args.kwargs
        assert params["mode"] == "payment"
        assert params["line_items"][0]["price_data"] == {
            "currency": "usd",
            "unit_amount": 2500,
            "product_data": {"name": "Credits"},
        }
        assert params["customer_email"] == "buyer@example.com"
        assert "customer" not in params
        assert params["success_url"] == "https://app/ok"
        assert "payment_intent_data" in params

    def test_requires_price_or_amount(self, stripe_service):
        with pytest.raises(ValueError):
            stripe_service.create_checkout_session(mode=CheckoutMode.PAYMENT)

    def test_stripe_error_propagates(self, stripe_service):
        error = stripe.InvalidRequestError("No such price: 'price_missing'", "price")

        with patch("stripe.checkout.Session.create", side_effect=error), patch(
            "src.services.payments.capture_payment_error"
        ) as mock_capture:
            with pytest.raises(stripe.InvalidRequestError):
                stripe_service.create_checkout_session(price_id="price_missing")

        mock_capture.assert_called_once()


class TestCreatePaymentIntent:
    """Test payment intent creation"""

    def test_returns_client_secret(self, stripe_service):
        with patch("stripe.PaymentIntent.create") as mock_create:
            mock_create.return_value = {
                "id": "pi_1",
                "client_secret": "pi_1_secret_abc",
                "status": "requires_payment_method",
            }

            result = stripe_service.create_payment_intent(1000, "EUR", user_id="u1")

        assert result.payment_intent_id == "pi_1"
        assert result.client_secret == "pi_1_secret_abc"
        params = mock_create.call_args.kwargs
        assert params["currency"] == "eur"
        assert params["metadata"] == {"userId": "u1"}
        assert params["automatic_payment_methods"] == {"enabled": True}


class TestRetrieveCheckoutSession:
    """Test checkout session retrieval"""

    def test_returns_selected_fields(self, stripe_service):
        with patch("stripe.checkout.Session.retrieve") as mock_retrieve:
            mock_retrieve.return_value = {
                "id": "cs_1",
                "status": "complete",
                "payment_status": "paid",
                "customer": "cus_1",
                "subscription": "sub_1",
                "line_items": ["ignored"],
            }

            session = stripe_service.retrieve_checkout_session("cs_1")

        assert session["payment_status"] == "paid"
        assert session["subscription"] == "sub_1"
        assert "line_items" not in session


class TestStripeErrorMessage:
    """Test provider message extraction"""

    def test_uses_stripe_message(self):
        error = stripe.CardError("Your card was declined.", "card", "card_declined")
        assert stripe_error_message(error) == "Your card was declined."

    def test_falls_back_to_str(self):
        assert stripe_error_message(RuntimeError("boom")) == "boom"
