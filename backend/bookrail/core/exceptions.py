# backend/bookrail/core/exceptions.py
"""
Domain-specific exceptions for the booking and settlement core.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)

TRANSFER_PENDING_USER_MESSAGE = "Fee charged, provider payment pending"


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to HTTPException using the class status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ForbiddenException(DomainException):
    """Raised when the actor is not a party allowed to perform the action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Booking lifecycle


class InvalidTransitionException(ConflictException):
    """Raised when a booking is not in a status the requested operation accepts."""

    def __init__(self, operation: str, current_status: str, allowed: list[str]):
        super().__init__(
            message=f"Cannot {operation} a booking that is {current_status}",
            code="INVALID_TRANSITION",
            details={
                "operation": operation,
                "current_status": current_status,
                "allowed_from": allowed,
            },
        )


class InvalidBookingStateException(ConflictException):
    """Raised when settlement is requested for a booking outside CONFIRMED."""

    def __init__(self, booking_id: str, current_status: str):
        super().__init__(
            message="Payment can only be processed for confirmed bookings",
            code="INVALID_STATE",
            details={"booking_id": booking_id, "current_status": current_status},
        )


class ConcurrentModificationException(ConflictException):
    """Raised when a conditional write lost a race. Safe to retry after re-reading."""

    retryable = True

    def __init__(self, entity: str, entity_id: str, expected: str):
        super().__init__(
            message=f"{entity} {entity_id} was modified concurrently",
            code="CONCURRENT_MODIFICATION",
            details={"entity": entity, "id": entity_id, "expected": expected},
        )


# Settlement


class AlreadyPaidException(ConflictException):
    """Raised when the fee leg for a booking has already been collected."""

    def __init__(self, booking_id: str):
        super().__init__(
            message="Payment already completed",
            code="ALREADY_PAID",
            details={"booking_id": booking_id},
        )


class PaymentNotCompletedException(BusinessRuleException):
    """Raised when an operation needs a collected fee leg that is not there yet."""

    def __init__(
        self,
        booking_id: str,
        message: str = "Payment not completed",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="PAYMENT_NOT_COMPLETED",
            details={"booking_id": booking_id, **(details or {})},
        )


class PayoutAccountNotVerifiedException(BusinessRuleException):
    """Raised when the provider has no verified bank account linked."""

    def __init__(self, booking_id: str, provider_id: str, settlement_state: str):
        super().__init__(
            message="Provider bank account not set up or verified",
            code="PAYOUT_ACCOUNT_NOT_VERIFIED",
            details={
                "booking_id": booking_id,
                "provider_id": provider_id,
                "settlement_state": settlement_state,
                "user_message": (
                    "The provider needs to link and verify a bank account before "
                    "their payment can be sent. Please contact your provider."
                ),
            },
        )


class RailError(DomainException):
    """Base for payment rail failures; carries the rail and its own error code."""

    retryable: bool = False
    default_code = "RAIL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        rail: str,
        rail_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.rail = rail
        self.rail_code = rail_code
        super().__init__(
            message=message,
            code=self.default_code,
            details={"rail": rail, "rail_code": rail_code, **(details or {})},
        )


class RailRejectedException(RailError):
    """Permanent rejection by a rail (declined card, invalid account). Do not retry.

    A declined fee charge is 402. A rejected transfer is 422: by then the fee
    is already charged and only the provider payout is outstanding.
    """

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_code = "RAIL_REJECTED"

    def __init__(
        self,
        message: str,
        *,
        rail: str,
        rail_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, rail=rail, rail_code=rail_code, details=details)
        if rail == "transfer":
            self.status_code = HTTP_422_UNPROCESSABLE


class RailTransientException(RailError):
    """Timeout, network or rail-side outage. Retry with backoff."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "RAIL_TRANSIENT"
    retryable = True

    def to_http_exception(self) -> HTTPException:
        exc = super().to_http_exception()
        exc.headers = {"Retry-After": "2"}
        return exc


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
