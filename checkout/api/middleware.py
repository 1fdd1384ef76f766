"""
Request validation and error handling for the API layer.
"""
import logging

from ariadne import format_error
from django.http import JsonResponse

from checkout.domain.errors import CheckoutError

logger = logging.getLogger(__name__)


class ValidationError(CheckoutError):
    """Malformed request."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.code = code
        super().__init__(message)


class ErrorHandler:
    """Error handler for API responses."""

    ERROR_CODES = {
        "VALIDATION_ERROR": 400,
        "VOUCHER_INVALID": 400,
        "INVALID_STATE": 400,
        "PAYMENT_METHOD_NOT_SUPPORTED": 400,
        "PAYMENT_FAILED": 402,
        "NOT_FOUND": 404,
        "INSUFFICIENT_STOCK": 409,
        "DUPLICATE_REQUEST": 409,
        "INVENTORY_NOT_FOUND": 500,
        "INTERNAL_ERROR": 500,
    }

    @classmethod
    def status_for(cls, code: str) -> int:
        return cls.ERROR_CODES.get(code, 400)

    @classmethod
    def handle_error(cls, error: Exception) -> JsonResponse:
        """Handle error and return JSON response."""
        if isinstance(error, CheckoutError):
            if error.code == "INVENTORY_NOT_FOUND":
                logger.error("inventory_missing", extra={"error": error.message})
            return JsonResponse(
                {
                    "error": {
                        "code": error.code,
                        "message": error.message,
                    }
                },
                status=cls.status_for(error.code),
            )

        logger.error(
            "unexpected_error",
            extra={"error": f"{type(error).__name__}: {error}"},
            exc_info=error,
        )
        return JsonResponse(
            {
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An internal error occurred",
                }
            },
            status=500,
        )

    @classmethod
    def format_graphql_error(cls, error, debug: bool = False) -> dict:
        """Ariadne error formatter that exposes the domain error code."""
        formatted = format_error(error, debug)
        original = getattr(error, "original_error", None)
        if isinstance(original, CheckoutError):
            formatted.setdefault("extensions", {})["code"] = original.code
        elif original is not None:
            logger.error(
                "unexpected_error",
                extra={"error": f"{type(original).__name__}: {original}"},
                exc_info=original,
            )
            formatted["message"] = "An internal error occurred"
            formatted.setdefault("extensions", {})["code"] = "INTERNAL_ERROR"
        return formatted
