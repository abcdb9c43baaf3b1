"""Amount, due date, overdue and late fee rules for rentals.

Everything here is a pure function of the rental record and a reference
time; nothing reads from or writes to storage.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from video_rental.config import LATE_FEE_PER_DAY
from video_rental.domain.models import Rental

SECONDS_PER_DAY = 86_400


def compute_amount(film_rental_rate: float) -> float:
    """Return the flat price charged for a rental at the film's current rate."""
    return round(float(film_rental_rate), 2)


def compute_expected_return_date(
    rental: Rental,
    rental_duration: Optional[int] = None,
) -> Optional[datetime]:
    """Return the due date, falling back to rental date plus film duration."""
    if rental.due_date is not None:
        return rental.due_date
    duration = rental_duration if rental_duration is not None else rental.rental_duration
    if duration is None:
        return None
    return rental.rental_date + timedelta(days=int(duration))


def is_overdue(rental: Rental, now: Optional[datetime] = None) -> bool:
    """Only rentals holding a copy (paid or rented, not returned) can be overdue."""
    if not rental.is_open:
        return False
    expected = compute_expected_return_date(rental)
    if expected is None:
        return False
    return (now or datetime.now()) > expected


def days_overdue(rental: Rental, now: Optional[datetime] = None) -> int:
    """Whole days past the expected return date, rounded up; 0 when not overdue."""
    now = now or datetime.now()
    if not is_overdue(rental, now):
        return 0
    expected = compute_expected_return_date(rental)
    late_seconds = (now - expected).total_seconds()
    return math.ceil(late_seconds / SECONDS_PER_DAY)


def compute_late_fee(
    rental: Rental,
    now: Optional[datetime] = None,
    fee_per_day: float = LATE_FEE_PER_DAY,
) -> float:
    return round(days_overdue(rental, now) * float(fee_per_day), 2)
