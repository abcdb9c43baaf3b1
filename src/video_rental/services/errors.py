"""Custom service layer errors."""

from __future__ import annotations


class ServiceError(Exception):
    """Base error for service-layer failures."""

    status_code = 400
    code = "service_error"


class ValidationError(ServiceError):
    """Raised when an argument fails validation."""

    code = "validation_error"


class NotFoundError(ServiceError):
    """Raised when a rental or inventory item is not found."""

    status_code = 404
    code = "not_found"


class NotAvailableError(ServiceError):
    """Raised when the requested copy already has an open rental."""

    status_code = 409
    code = "not_available"


class InvalidTransitionError(ServiceError):
    """Raised when a status change is not in the transition table."""

    code = "invalid_transition"

    def __init__(self, from_status: object, to_status: object) -> None:
        self.from_status = getattr(from_status, "value", from_status)
        self.to_status = getattr(to_status, "value", to_status)
        super().__init__(
            f"Cannot change status from {self.from_status} to {self.to_status}"
        )


class UnauthorizedError(ServiceError):
    """Raised when the actor may not act on the rental."""

    status_code = 403
    code = "unauthorized"


class InvalidStateError(ServiceError):
    """Raised when the rental's current state forbids the operation."""

    code = "invalid_state"


class PaymentMismatchError(ServiceError):
    """Raised when a payment does not equal the rental amount."""

    code = "payment_mismatch"


class AlreadyReturnedError(ServiceError):
    """Raised when a rental has already been returned."""

    code = "already_returned"


class InvalidDateError(ServiceError):
    """Raised when a due date is malformed or in the past."""

    code = "invalid_date"
