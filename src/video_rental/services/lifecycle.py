"""Rental status state machine and per-operation guards."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional

from video_rental.domain.models import (
    PROCESSING_STATUSES,
    Actor,
    Rental,
    RentalStatus,
)
from video_rental.services.errors import (
    AlreadyReturnedError,
    InvalidStateError,
    InvalidTransitionError,
    PaymentMismatchError,
    UnauthorizedError,
)

ALLOWED_TRANSITIONS: dict[RentalStatus, frozenset[RentalStatus]] = {
    RentalStatus.PENDING: frozenset(
        {RentalStatus.PAID, RentalStatus.RENTED, RentalStatus.CANCELLED}
    ),
    RentalStatus.RESERVED: frozenset(
        {RentalStatus.IN_BEHANDELING, RentalStatus.RENTED, RentalStatus.CANCELLED}
    ),
    RentalStatus.IN_BEHANDELING: frozenset(
        {RentalStatus.RENTED, RentalStatus.CANCELLED}
    ),
    RentalStatus.PAID: frozenset({RentalStatus.RENTED}),
    RentalStatus.RENTED: frozenset({RentalStatus.RETURNED}),
    RentalStatus.RETURNED: frozenset(),
    RentalStatus.CANCELLED: frozenset(),
}

CENT = Decimal("0.01")


def coerce_status(value: str | RentalStatus | None) -> Optional[RentalStatus]:
    """Return the matching status, or None for values outside the enum."""
    if isinstance(value, RentalStatus):
        return value
    if value is None:
        return None
    try:
        return RentalStatus(str(value).strip().lower())
    except ValueError:
        return None


def _to_cents(value: object) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
        if not amount.is_finite() or amount != amount.quantize(CENT):
            return None
    except (InvalidOperation, ValueError):
        return None
    return int(amount * 100)


class RentalLifecycle:
    """Transition table plus the ownership and state guards layered on it."""

    def can_transition(
        self,
        from_status: str | RentalStatus,
        to_status: str | RentalStatus,
    ) -> bool:
        source = coerce_status(from_status)
        target = coerce_status(to_status)
        if source is None or target is None:
            return False
        return target in ALLOWED_TRANSITIONS[source]

    def assert_transition(
        self,
        from_status: str | RentalStatus,
        to_status: str | RentalStatus,
    ) -> RentalStatus:
        """Return the target status, or raise if the pair is not allowed."""
        if not self.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)
        return coerce_status(to_status)

    def assert_owner(self, actor: Actor, rental: Rental) -> None:
        if actor.is_staff or actor.id != rental.customer_id:
            raise UnauthorizedError("This rental does not belong to your account")

    def assert_not_returned(self, rental: Rental) -> None:
        if rental.return_date is not None or rental.status == RentalStatus.RETURNED:
            raise AlreadyReturnedError("This rental has already been returned")

    def assert_cancellable(self, actor: Actor, rental: Rental) -> None:
        self.assert_owner(actor, rental)
        if rental.status not in PROCESSING_STATUSES or rental.return_date is not None:
            raise InvalidStateError("Cannot cancel rental in current status")

    def assert_payable(self, actor: Actor, rental: Rental, amount: object) -> None:
        self.assert_owner(actor, rental)
        if rental.status in (RentalStatus.PAID, RentalStatus.RENTED):
            raise InvalidStateError("This rental has already been paid")
        if rental.status != RentalStatus.PENDING:
            raise InvalidStateError("This rental can no longer be paid")
        paid_cents = _to_cents(amount)
        if paid_cents is None or paid_cents != _to_cents(rental.amount):
            raise PaymentMismatchError("Payment amount does not match the rental amount")

    def assert_returnable(self, rental: Rental) -> None:
        self.assert_not_returned(rental)
        self.assert_transition(rental.status, RentalStatus.RETURNED)

    def assert_extendable(self, actor: Actor, rental: Rental) -> None:
        self.assert_owner(actor, rental)
        self.assert_not_returned(rental)
        if rental.status == RentalStatus.CANCELLED:
            raise InvalidStateError("This rental can no longer be extended")
        if not rental.is_open:
            raise InvalidStateError(
                "This rental must be paid before it can be extended"
            )

    def assert_due_date_editable(self, actor: Actor, rental: Rental) -> None:
        if not actor.is_staff:
            raise UnauthorizedError("Only staff can change due dates")
        self.assert_not_returned(rental)
        if rental.status == RentalStatus.CANCELLED:
            raise InvalidStateError("Cannot change the due date of a cancelled rental")
