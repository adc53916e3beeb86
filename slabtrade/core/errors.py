from __future__ import annotations

from typing import Any, Optional


class DomainError(Exception):
    """Base class for errors raised by the inventory core.

    ``code`` is machine readable and stable; ``details`` carries the values a
    caller needs to recover (for example the slabs actually available).
    """

    code = "DOMAIN_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"


class InsufficientStock(DomainError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, requested: int, available: int):
        super().__init__(
            "Requested {} slab(s) but only {} available.".format(requested, available),
            {"requested": requested, "available": available},
        )
        self.requested = requested
        self.available = available


class InvariantViolation(DomainError):
    code = "INVARIANT_VIOLATION"


class BatchNotAvailable(DomainError):
    code = "BATCH_NOT_AVAILABLE"


class ExpiryInPast(DomainError):
    code = "EXPIRY_IN_PAST"


class ReservationNotApproved(DomainError):
    code = "RESERVATION_NOT_APPROVED"


class QuantityExceedsReservation(DomainError):
    code = "QUANTITY_EXCEEDS_RESERVATION"


class AlreadyConverted(DomainError):
    code = "ALREADY_CONVERTED"


class InvalidReservationState(DomainError):
    code = "INVALID_RESERVATION_STATE"


class PriceBelowIndustryValue(DomainError):
    code = "PRICE_BELOW_INDUSTRY_VALUE"


class Conflict(DomainError):
    code = "CONFLICT"


class GrantConflict(Conflict):
    code = "GRANT_CONFLICT"


class BatchCodeExists(Conflict):
    code = "BATCH_CODE_EXISTS"


class ConcurrentUpdate(Conflict):
    code = "CONCURRENT_UPDATE"


class AuthorizationDenied(DomainError):
    code = "AUTHORIZATION_DENIED"


class NotFound(DomainError):
    code = "NOT_FOUND"
    entity = "Resource"

    def __init__(self, identifier: str):
        super().__init__(
            "{} {} not found.".format(self.entity, identifier),
            {"id": identifier},
        )


class BatchNotFound(NotFound):
    entity = "Batch"


class ReservationNotFound(NotFound):
    entity = "Reservation"


class GrantNotFound(NotFound):
    entity = "Sharing grant"


class UserNotFound(NotFound):
    entity = "User"


class SaleNotFound(NotFound):
    entity = "Sale"


__all__ = [
    "AlreadyConverted",
    "AuthorizationDenied",
    "BatchCodeExists",
    "BatchNotAvailable",
    "BatchNotFound",
    "ConcurrentUpdate",
    "Conflict",
    "DomainError",
    "ExpiryInPast",
    "GrantConflict",
    "GrantNotFound",
    "InsufficientStock",
    "InvalidReservationState",
    "InvariantViolation",
    "NotFound",
    "PriceBelowIndustryValue",
    "QuantityExceedsReservation",
    "ReservationNotApproved",
    "ReservationNotFound",
    "SaleNotFound",
    "UserNotFound",
    "ValidationError",
]
