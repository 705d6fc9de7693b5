"""
Custom exceptions and handlers for consistent API error responses.

Every domain failure is an APIError carrying a stable error_code so staff
clients can act on the reason rather than on a generic failure.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class APIError(HTTPException):
    """Base API error with consistent structure"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.context = context or {}


class NotFoundError(APIError):
    """Resource not found error"""

    def __init__(
        self, detail: str = "Resource not found", error_code: str = "NOT_FOUND"
    ):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND, detail=detail, error_code=error_code
        )


class ItemNotFoundError(NotFoundError):
    """Menu item is not part of the order's item list"""

    def __init__(self, menu_item_id: str):
        super().__init__(
            detail=f"Menu item {menu_item_id} not found in order",
            error_code="ITEM_NOT_FOUND",
        )
        self.menu_item_id = menu_item_id


class ValidationError(APIError):
    """Malformed or missing input, never retried automatically"""

    def __init__(
        self, detail: str = "Validation failed", error_code: str = "VALIDATION_ERROR"
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code,
        )


class InvalidTransitionError(APIError):
    """State change not allowed from the current lifecycle state"""

    def __init__(
        self, detail: str = "Invalid state transition", error_code: str = "INVALID_TRANSITION"
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT, detail=detail, error_code=error_code
        )


class ConcurrencyConflictError(APIError):
    """The row changed between read and write; re-fetch and retry"""

    def __init__(
        self,
        detail: str = "The record was modified by another user. Refresh and try again.",
        current_version: Optional[int] = None,
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONCURRENCY_CONFLICT",
            headers={"Retry-After": "0"},
            context={"retryable": True, "current_version": current_version},
        )


class GatewayError(APIError):
    """Payment provider failure, surfaced so the user can retry"""

    def __init__(
        self,
        detail: str = "Payment gateway error",
        error_code: str = "GATEWAY_ERROR",
        provider: Optional[str] = None,
    ):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
            error_code=error_code,
            context={"provider": provider, "retryable": True},
        )
        self.provider = provider


class GatewayOrderCreationError(GatewayError):
    """Provider order could not be created (disabled gateway or provider rejection)"""

    def __init__(self, detail: str, provider: Optional[str] = None):
        super().__init__(
            detail=detail,
            error_code="GATEWAY_ORDER_CREATION_FAILED",
            provider=provider,
        )


class UnpaidOrdersExistError(APIError):
    """Table release blocked by served orders that are still unpaid"""

    def __init__(self, orders: List[Dict[str, Any]], total_due: Decimal):
        numbers = ", ".join(f"#{order['order_number']}" for order in orders)
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=(
                f"Cannot release table. There are {len(orders)} unpaid order(s): "
                f"{numbers}. Total due: ₹{total_due:.2f}. "
                "Please collect payment before clearing the table."
            ),
            error_code="UNPAID_ORDERS_EXIST",
            context={
                "unpaid_orders": orders,
                "total_due": str(total_due),
            },
        )
        self.orders = orders
        self.total_due = total_due


class PartialReconciliationError(APIError):
    """Order and payment ledger could not both be written"""

    def __init__(self, detail: str, order_id: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="PARTIAL_RECONCILIATION",
            context={"order_id": order_id, "retryable": True},
        )


class ConflictError(APIError):
    """Resource conflict error"""

    def __init__(self, detail: str = "Resource conflict", error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT, detail=detail, error_code=error_code
        )


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    """Convert ValueError to consistent API response"""
    logger.warning(f"ValueError at {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": str(exc),
            "error_code": "VALIDATION_ERROR",
            "path": str(request.url.path),
        },
    )


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} at {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error_code": exc.error_code,
            "path": str(request.url.path),
            **exc.context,
        },
        headers=exc.headers,
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app"""
    app.add_exception_handler(ValueError, handle_value_error)
    app.add_exception_handler(APIError, handle_api_error)
