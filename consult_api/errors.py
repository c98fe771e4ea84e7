"""
Domain errors for the consultation service.

Every error belongs to one of four kinds (not found, conflict, unauthorized,
invalid). Each kind knows the HTTP status it is reported with; the API layer
renders all of them through a single exception handler.
"""

from typing import Any, Dict, Optional

from fastapi import status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

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

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class UnauthorizedException(DomainException):
    """Raised when the caller's role or ownership doesn't permit the action."""

    status_code = status.HTTP_403_FORBIDDEN


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


# Not found


class UserNotFound(NotFoundException):
    pass


class ConsultantNotFound(NotFoundException):
    pass


class BookingNotFound(NotFoundException):
    pass


class PaymentNotFound(NotFoundException):
    pass


class ChatRequestNotFound(NotFoundException):
    pass


# Conflict


class SlotAlreadyBooked(ConflictException):
    pass


class UserDoubleBooked(ConflictException):
    pass


class SlotAlreadyAccepted(ConflictException):
    pass


class InvalidStatusTransition(ConflictException):
    pass


class ChatRequestExists(ConflictException):
    pass


class EmailAlreadyRegistered(ConflictException):
    pass


# Unauthorized


class InvalidCredentials(UnauthorizedException):
    pass


class RoleRequired(UnauthorizedException):
    pass


class NotBookingParty(UnauthorizedException):
    pass


class ChatNotAuthorized(UnauthorizedException):
    pass


class ChatNotAccepted(UnauthorizedException):
    pass


class ReviewNotAllowed(UnauthorizedException):
    pass


# Invalid


class InvalidAvailability(ValidationException):
    pass


class InvalidSlot(ValidationException):
    pass


class OutsideAvailability(ValidationException):
    pass


class InvalidRating(ValidationException):
    pass
