"""
Error taxonomy for the ordering core.

Every failure the Order Service, Store, Status Machine or collaborators can
surface is one of these types. Each carries a machine-readable code and the
HTTP status the API layer answers with, so routes never translate errors by
hand.

Usage:
    from canteen.core.exceptions import NotFoundError

    raise NotFoundError("Order MRC000042 not found", details={"token": "MRC000042"})
"""

from __future__ import annotations

from typing import Any, Optional


class CanteenError(Exception):
    """
    Base exception for all ordering errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable slug.
        http_status: HTTP status for API responses.
        details: Optional dict with extra context.
        cause: Optional underlying exception.
    """

    default_code: str = "ERROR"
    default_http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.http_status = http_status if http_status is not None else self.default_http_status
        self.details: dict[str, Any] = details or {}
        self.cause = cause

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, code={self.code!r}, "
            f"http_status={self.http_status})"
        )

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        out: dict[str, Any] = {
            "success": False,
            "error": self.code,
            "detail": self.message,
        }
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(CanteenError):
    """Malformed or missing input."""

    default_code = "VALIDATION_ERROR"
    default_http_status = 400


class UnauthorizedError(CanteenError):
    """The request carries no usable identity."""

    default_code = "UNAUTHORIZED"
    default_http_status = 401


class ForbiddenError(CanteenError):
    """The acting role may not perform this operation."""

    default_code = "FORBIDDEN"
    default_http_status = 403


class NotFoundError(CanteenError):
    """Unknown order id or order number."""

    default_code = "NOT_FOUND"
    default_http_status = 404


class ConflictError(CanteenError):
    """Stale compare-and-set or exhausted order number retries. Retryable."""

    default_code = "CONFLICT"
    default_http_status = 409


class OrderNumberConflictError(ConflictError):
    """Another order already holds this order number."""

    default_code = "ORDER_NUMBER_CONFLICT"


class InvalidTransitionError(CanteenError):
    """The requested status edge is not part of the order lifecycle."""

    default_code = "INVALID_TRANSITION"
    default_http_status = 400


class ItemUnavailableError(CanteenError):
    """A referenced menu item is disabled."""

    default_code = "ITEM_UNAVAILABLE"
    default_http_status = 400


class MenuItemNotFoundError(ItemUnavailableError):
    """A referenced menu item does not exist."""

    default_code = "MENU_ITEM_NOT_FOUND"
    default_http_status = 404


class ServiceUnavailableError(CanteenError):
    """The store or a collaborator is transiently unreachable."""

    default_code = "SERVICE_UNAVAILABLE"
    default_http_status = 503


class HubUnavailableError(ServiceUnavailableError):
    """The realtime backplane could not accept a publish."""

    default_code = "REALTIME_UNAVAILABLE"
