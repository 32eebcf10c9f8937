"""
PayPal Orders Client

Creates and captures PayPal orders through the REST API (v2 Orders). Every
call first fetches an OAuth access token with the client-credentials grant.

API Documentation: https://developer.paypal.com/docs/api/orders/v2/

Usage:
    from src.services.paypal_client import PayPalClient

    client = PayPalClient()
    order = await client.create_order(amount="19.99", currency="USD")
    capture = await client.capture_order(order.order_id)

Environment Variables:
    PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET - REST app credentials
    PAYPAL_MODE - "sandbox" (default) or "live"
    PAYPAL_TIMEOUT_SECONDS - Request timeout in seconds (default: 30)
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from src.config import Config
from src.schemas.payments import PaymentProvider, PayPalOrderResult
from src.services.prometheus_metrics import record_provider_request
from src.utils.sentry_context import capture_payment_error

logger = logging.getLogger(__name__)


class PayPalAPIError(Exception):
    """Exception raised when a PayPal API call fails."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


def _error_message(response: httpx.Response) -> str:
    """Pull PayPal's own error description out of a failed response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] if response.text else f"HTTP {response.status_code}"

    if isinstance(data, dict):
        # Orders API errors use "message"; OAuth errors use "error_description"
        return (
            data.get("message")
            or data.get("error_description")
            or data.get("error")
            or data.get("name")
            or f"HTTP {response.status_code}"
        )
    return f"HTTP {response.status_code}"


class PayPalClient:
    """Async client for PayPal order creation and capture."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        base_url: str | None = None,
        return_base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.client_id = client_id or Config.PAYPAL_CLIENT_ID
        self.client_secret = client_secret or Config.PAYPAL_CLIENT_SECRET
        self.base_url = (base_url or Config.PAYPAL_BASE_URL).rstrip("/")
        self.return_base_url = (return_base_url or Config.BASE_URL).rstrip("/")
        self.timeout = timeout or Config.PAYPAL_TIMEOUT_SECONDS

        if not self.client_id or not self.client_secret:
            logger.warning("PayPal credentials not configured - PayPal calls will fail")

    async def _post(
        self,
        client: httpx.AsyncClient,
        operation: str,
        path: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            response = await client.post(f"{self.base_url}{path}", **kwargs)
        except httpx.TimeoutException as e:
            logger.error("PayPal %s timed out: %s", operation, e)
            raise PayPalAPIError("PayPal request timed out") from e
        except httpx.RequestError as e:
            logger.error("PayPal %s request error: %s", operation, e)
            raise PayPalAPIError(f"PayPal request failed: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(
                "PayPal %s failed: status=%d, message=%s", operation, response.status_code, message
            )
            try:
                payload = response.json()
            except ValueError:
                payload = None
            raise PayPalAPIError(message, status_code=response.status_code, payload=payload)

        return response.json()

    async def _call(self, operation: str, path: str, body: dict[str, Any] | None = None):
        """Fetch a token and POST ``body`` to ``path``; failures are recorded and re-raised."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                token = await self._get_access_token(client)
                data = await self._post(
                    client,
                    operation,
                    path,
                    json=body if body is not None else {},
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except PayPalAPIError as e:
            record_provider_request(PaymentProvider.PAYPAL.value, operation, success=False)
            capture_payment_error(
                e,
                operation=operation,
                provider=PaymentProvider.PAYPAL.value,
                details={"status_code": e.status_code, "path": path},
            )
            raise

        record_provider_request(PaymentProvider.PAYPAL.value, operation, success=True)
        return data

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        if not self.client_id or not self.client_secret:
            raise PayPalAPIError("PayPal credentials not configured")

        data = await self._post(
            client,
            "oauth_token",
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            headers={"Accept": "application/json"},
        )
        token = data.get("access_token")
        if not token:
            raise PayPalAPIError("PayPal token response missing access_token")
        return token

    async def get_access_token(self) -> str:
        """Fetch a fresh OAuth access token (client-credentials grant)."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._get_access_token(client)

    async def create_order(
        self,
        amount: str,
        currency: str = "USD",
        description: str | None = None,
        user_id: str | None = None,
    ) -> PayPalOrderResult:
        """
        Create a PayPal order with intent CAPTURE.

        Args:
            amount: Decimal amount as a string (e.g. "19.99")
            currency: ISO currency code
            description: Optional purchase description
            user_id: Optional local user id, stored as the purchase unit custom_id

        Returns:
            PayPalOrderResult with the order id and buyer approval URL

        Raises:
            PayPalAPIError: When the token fetch or order creation fails
        """
        purchase_unit: dict[str, Any] = {
            "amount": {"currency_code": currency.upper(), "value": amount},
        }
        if description:
            purchase_unit["description"] = description
        if user_id:
            purchase_unit["custom_id"] = user_id

        body = {
            "intent": "CAPTURE",
            "purchase_units": [purchase_unit],
            "application_context": {
                "return_url": f"{self.return_base_url}/paypal/success",
                "cancel_url": f"{self.return_base_url}/paypal/cancel",
                "user_action": "PAY_NOW",
            },
        }

        data = await self._call("create_order", "/v2/checkout/orders", body)

        approval_url = next(
            (
                link.get("href")
                for link in data.get("links", [])
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        logger.info(
            "PayPal order created: order_id=%s, amount=%s %s", data.get("id"), amount, currency
        )
        return PayPalOrderResult(
            order_id=data["id"],
            approval_url=approval_url,
            status=data.get("status"),
        )

    async def capture_order(self, order_id: str) -> dict[str, Any]:
        """
        Capture funds for an approved order.

        Returns the capture payload exactly as PayPal reports it.
        """
        path = f"/v2/checkout/orders/{quote(order_id, safe='')}/capture"
        data = await self._call("capture_order", path)
        logger.info("PayPal order captured: order_id=%s, status=%s", order_id, data.get("status"))
        return data
