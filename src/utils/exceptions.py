"""
HTTP Exception Factories

Centralized exception creation with consistent error codes and status codes.

Every factory returns an HTTPException whose ``detail`` is a dict carrying a
machine-readable ``error`` code and a human-readable ``message``. The HTTP
exception handler returns such details verbatim.

Usage:
    from src.utils.exceptions import APIExceptions

    raise APIExceptions.missing_field("userId", code="missing_user_id")
"""

import logging
from typing import Any

from fastapi import HTTPException

logger = logging.getLogger(__name__)


class ErrorCode:
    """Machine-readable error codes returned in the ``error`` field."""

    INVALID_REQUEST = "invalid_request"
    MISSING_USER_ID = "missing_user_id"
    MISSING_PRICE = "missing_price"
    MISSING_ORDER_ID = "missing_order_id"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_MODE = "invalid_mode"
    ORDER_NOT_FOUND = "order_not_found"
    SESSION_NOT_FOUND = "session_not_found"
    CUSTOMER_CONFLICT = "customer_conflict"
    WEBHOOK_VERIFICATION_FAILED = "webhook_verification_failed"
    WEBHOOK_PROCESSING_FAILED = "webhook_processing_failed"
    PROVIDER_ERROR = "provider_error"
    INTERNAL_ERROR = "internal_error"


def error_body(code: str, message: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"error": code, "message": message}
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


class APIExceptions:
    """Factory class for creating standardized HTTP exceptions."""

    @staticmethod
    def bad_request(code: str, message: str, **extra: Any) -> HTTPException:
        """
        400 Bad Request - Invalid client input.

        Args:
            code: Machine-readable error code
            message: Custom error message
            extra: Additional fields merged into the response body

        Returns:
            HTTPException with status 400
        """
        return HTTPException(status_code=400, detail=error_body(code, message, **extra))

    @staticmethod
    def missing_field(field: str, code: str) -> HTTPException:
        """400 Bad Request - A required field was not supplied."""
        return APIExceptions.bad_request(code, f"Missing required field: {field}", field=field)

    @staticmethod
    def invalid_amount(value: Any) -> HTTPException:
        """400 Bad Request - Amount is absent, non-numeric or not positive."""
        return APIExceptions.bad_request(
            ErrorCode.INVALID_AMOUNT, f"Invalid amount: {value!r}", field="amount"
        )

    @staticmethod
    def not_found(code: str, resource: str, resource_id: Any | None = None) -> HTTPException:
        """
        404 Not Found - Resource doesn't exist.

        Args:
            code: Machine-readable error code
            resource: Type of resource (e.g., "Order")
            resource_id: Optional ID of the resource

        Returns:
            HTTPException with status 404
        """
        message = f"{resource} not found"
        if resource_id is not None:
            message += f": {resource_id}"
        return HTTPException(status_code=404, detail=error_body(code, message))

    @staticmethod
    def conflict(code: str, message: str) -> HTTPException:
        """409 Conflict - The request contradicts recorded state."""
        return HTTPException(status_code=409, detail=error_body(code, message))

    @staticmethod
    def webhook_verification_failed(message: str) -> HTTPException:
        """400 Bad Request - Webhook payload failed verification; message is passed through."""
        return APIExceptions.bad_request(ErrorCode.WEBHOOK_VERIFICATION_FAILED, message)

    @staticmethod
    def provider_error(provider: str, message: str, status_code: int = 500) -> HTTPException:
        """
        5xx - Upstream payment provider call failed.

        The provider's message is echoed back unchanged.

        Args:
            provider: Provider name ("stripe" or "paypal")
            message: Provider error message
            status_code: HTTP status (default 500)

        Returns:
            HTTPException carrying the provider message
        """
        return HTTPException(
            status_code=status_code,
            detail=error_body(ErrorCode.PROVIDER_ERROR, message, provider=provider),
        )

    @staticmethod
    def webhook_processing_failed() -> HTTPException:
        """500 - Reconciliation failed; details stay in server logs."""
        return HTTPException(
            status_code=500,
            detail=error_body(ErrorCode.WEBHOOK_PROCESSING_FAILED, "Webhook processing failed"),
        )
