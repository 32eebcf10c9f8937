"""
Tests for the PayPal orders client.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.services.paypal_client import PayPalAPIError, PayPalClient

BASE_URL = "https://api-m.sandbox.paypal.com"


def make_response(status_code, data):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = data
    response.text = str(data)
    return response


TOKEN_RESPONSE = make_response(200, {"access_token": "A21AA-token", "token_type": "Bearer"})


@pytest.fixture
def paypal_client():
    return PayPalClient(
        client_id="client-id",
        client_secret="client-secret",
        base_url=BASE_URL,
        return_base_url="https://shop.example.com",
        timeout=5,
    )


def mock_post(mock_client, *responses):
    post = AsyncMock(side_effect=list(responses))
    mock_client.return_value.__aenter__.return_value.post = post
    return post


class TestCreateOrder:
    """Test PayPal order creation"""

    @pytest.mark.asyncio
    async def test_create_order_success(self, paypal_client):
        order_response = make_response(
            201,
            {
                "id": "ORDER-1",
                "status": "CREATED",
                "links": [
                    {"rel": "self", "href": f"{BASE_URL}/v2/checkout/orders/ORDER-1"},
                    {"rel": "approve", "href": "https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1"},
                ],
            },
        )

        with patch("httpx.AsyncClient") as mock_client:
            post = mock_post(mock_client, TOKEN_RESPONSE, order_response)

            result = await paypal_client.create_order(
                amount="19.99", currency="usd", description="Pro plan", user_id="u1"
            )

        assert result.order_id == "ORDER-1"
        assert result.approval_url == "https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1"
        assert result.status == "CREATED"

        token_call, order_call = post.call_args_list
        assert token_call.args[0] == f"{BASE_URL}/v1/oauth2/token"
        assert token_call.kwargs["data"] == {"grant_type": "client_credentials"}
        assert token_call.kwargs["auth"] == ("client-id", "client-secret")

        assert order_call.args[0] == f"{BASE_URL}/v2/checkout/orders"
        assert order_call.kwargs["headers"]["Authorization"] == "Bearer A21AA-token"
        body = order_call.kwargs["json"]
        assert body["intent"] == "CAPTURE"
        unit = body["purchase_units"][0]
        assert unit["amount"] == {"currency_code": "USD", "value": "19.99"}
        assert unit["custom_id"] == "u1"
        assert unit["description"] == "Pro plan"
        assert body["application_context"]["return_url"].startswith("https://shop.example.com")

    @pytest.mark.asyncio
    async def test_create_order_without_user(self, paypal_client):
        order_response = make_response(
            201,
            {"id": "ORDER-2", "status": "PAYER_ACTION_REQUIRED",
             "links": [{"rel": "payer-action", "href": "https://paypal.test/approve"}]},
        )

        with patch("httpx.AsyncClient") as mock_client:
            post = mock_post(mock_client, TOKEN_RESPONSE, order_response)
            result = await paypal_client.create_order(amount="5.00")

        assert result.approval_url == "https://paypal.test/approve"
        assert "custom_id" not in post.call_args_list[1].kwargs["json"]["purchase_units"][0]

    @pytest.mark.asyncio
    async def test_provider_error_message_is_carried(self, paypal_client):
        error_response = make_response(
            422,
            {"name": "UNPROCESSABLE_ENTITY", "message": "The requested action could not be performed"},
        )

        with patch("httpx.AsyncClient") as mock_client, patch(
            "src.services.paypal_client.capture_payment_error"
        ) as mock_capture:
            mock_post(mock_client, TOKEN_RESPONSE, error_response)

            with pytest.raises(PayPalAPIError) as exc_info:
                await paypal_client.create_order(amount="19.99")

        assert exc_info.value.message == "The requested action could not be performed"
        assert exc_info.value.status_code == 422
        mock_capture.assert_called_once()

    @pytest.mark.asyncio
    async def test_token_failure(self, paypal_client):
        token_error = make_response(
            401, {"error": "invalid_client", "error_description": "Client Authentication failed"}
        )

        with patch("httpx.AsyncClient") as mock_client, patch(
            "src.services.paypal_client.capture_payment_error"
        ):
            post = mock_post(mock_client, token_error)

            with pytest.raises(PayPalAPIError, match="Client Authentication failed"):
                await paypal_client.create_order(amount="19.99")

        assert post.call_count == 1

    @pytest.mark.asyncio
    async def test_timeout_is_wrapped(self, paypal_client):
        with patch("httpx.AsyncClient") as mock_client, patch(
            "src.services.paypal_client.capture_payment_error"
        ):
            mock_post(mock_client, httpx.TimeoutException("timed out"))

            with pytest.raises(PayPalAPIError, match="timed out"):
                await paypal_client.create_order(amount="1.00")

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        client = PayPalClient(client_id="", client_secret="", base_url=BASE_URL)
        client.client_id = None
        client.client_secret = None

        with patch("httpx.AsyncClient") as mock_client, patch(
            "src.services.paypal_client.capture_payment_error"
        ):
            post = mock_post(mock_client)

            with pytest.raises(PayPalAPIError, match="credentials not configured"):
                await client.create_order(amount="1.00")

        post.assert_not_called()


class TestCaptureOrder:
    """Test PayPal order capture"""

    @pytest.mark.asyncio
    async def test_capture_returns_provider_payload(self, paypal_client):
        capture_payload = {
            "id": "ORDER-1",
            "status": "COMPLETED",
            "purchase_units": [{"payments": {"captures": [{"id": "CAP-1"}]}}],
        }

        with patch("httpx.AsyncClient") as mock_client:
            post = mock_post(mock_client, TOKEN_RESPONSE, make_response(201, capture_payload))
            result = await paypal_client.capture_order("ORDER-1")

        assert result == capture_payload
        assert post.call_args_list[1].args[0] == f"{BASE_URL}/v2/checkout/orders/ORDER-1/capture"

    @pytest.mark.asyncio
    async def test_order_id_is_escaped_into_one_path_segment(self, paypal_client):
        with patch("httpx.AsyncClient") as mock_client:
            captured = make_response(201, {"status": "COMPLETED"})
            post = mock_post(mock_client, TOKEN_RESPONSE, captured)
            await paypal_client.capture_order("../../payments/captures/CAP1/refund?x=")

        url = post.call_args_list[1].args[0]
        assert url == (
            f"{BASE_URL}/v2/checkout/orders/"
            "..%2F..%2Fpayments%2Fcaptures%2FCAP1%2Frefund%3Fx%3D/capture"
        )


class TestAccessToken:
    """Test OAuth token retrieval"""

    @pytest.mark.asyncio
    async def test_get_access_token(self, paypal_client):
        with patch("httpx.AsyncClient") as mock_client:
            mock_post(mock_client, TOKEN_RESPONSE)
            token = await paypal_client.get_access_token()

        assert token == "A21AA-token"

    @pytest.mark.asyncio
    async def test_token_response_without_token(self, paypal_client):
        with patch("httpx.AsyncClient") as mock_client:
            mock_post(mock_client, make_response(200, {}))

            with pytest.raises(PayPalAPIError, match="missing access_token"):
                await paypal_client.get_access_token()
