"""Domain dataclasses and enums."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class RentalStatus(str, Enum):
    PENDING = "pending"
    RESERVED = "reserved"
    IN_BEHANDELING = "in_behandeling"
    PAID = "paid"
    RENTED = "rented"
    RETURNED = "returned"
    CANCELLED = "cancelled"


# A copy is checked out while one of its rentals is in these statuses.
OPEN_STATUSES = frozenset({RentalStatus.PAID, RentalStatus.RENTED})

# "Processing" statuses: created but not yet holding the copy.
PROCESSING_STATUSES = frozenset(
    {RentalStatus.PENDING, RentalStatus.RESERVED, RentalStatus.IN_BEHANDELING}
)

TERMINAL_STATUSES = frozenset({RentalStatus.RETURNED, RentalStatus.CANCELLED})


class ActorRole(str, Enum):
    CUSTOMER = "customer"
    STAFF = "staff"


@dataclass(frozen=True)
class Actor:
    """Authenticated party invoking an engine operation."""

    id: int
    role: ActorRole

    @classmethod
    def customer(cls, customer_id: int) -> "Actor":
        return cls(id=int(customer_id), role=ActorRole.CUSTOMER)

    @classmethod
    def staff(cls, staff_id: int) -> "Actor":
        return cls(id=int(staff_id), role=ActorRole.STAFF)

    @property
    def is_staff(self) -> bool:
        return self.role == ActorRole.STAFF


@dataclass(frozen=True)
class InventoryItem:
    """Physical copy of a film, with the film data the engine needs."""

    inventory_id: int
    film_id: int
    store_id: int
    title: str
    rental_rate: float
    rental_duration: int


@dataclass(frozen=True)
class Availability:
    available: bool
    reason: Optional[str]
    item: InventoryItem


@dataclass(slots=True)
class Rental:
    id: Optional[int]
    inventory_id: int
    customer_id: int
    staff_id: Optional[int]
    rental_date: datetime
    due_date: Optional[datetime]
    return_date: Optional[datetime]
    amount: float
    status: RentalStatus
    extension_count: int = 0
    film_id: Optional[int] = None
    film_title: Optional[str] = None
    rental_rate: Optional[float] = None
    rental_duration: Optional[int] = None
    store_id: Optional[int] = None
    last_update: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES and self.return_date is None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES or self.return_date is not None


@dataclass(frozen=True)
class NewRental:
    """Fields for a rental about to be inserted."""

    inventory_id: int
    customer_id: int
    staff_id: Optional[int]
    rental_date: datetime
    amount: float
    status: RentalStatus = RentalStatus.PENDING
    due_date: Optional[datetime] = None


@dataclass(frozen=True)
class RentalAuditEntry:
    id: Optional[int]
    rental_id: int
    action: str
    actor_id: Optional[int]
    reason: Optional[str]
    old_value: Optional[str]
    new_value: Optional[str]
    created_at: str


@dataclass(frozen=True)
class CustomerRentalStats:
    """Status counts and amount rollups for one customer."""

    status_counts: dict[str, int] = field(default_factory=dict)
    total_rentals: int = 0
    total_spent: float = 0.0
    paid_amount: float = 0.0
    completed_amount: float = 0.0

    @classmethod
    def zero(cls) -> "CustomerRentalStats":
        return cls(status_counts={status.value: 0 for status in RentalStatus})

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {status.value: 0 for status in RentalStatus}
        payload.update(self.status_counts)
        payload.update(
            {
                "total_rentals": self.total_rentals,
                "total_spent": round(self.total_spent, 2),
                "paid_amount": round(self.paid_amount, 2),
                "completed_amount": round(self.completed_amount, 2),
            }
        )
        return payload


@dataclass(frozen=True)
class StaffDashboardStats:
    total_rentals: int = 0
    active_rentals: int = 0
    overdue_count: int = 0
    today_rentals: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_rentals": self.total_rentals,
            "active_rentals": self.active_rentals,
            "overdue_count": self.overdue_count,
            "today_rentals": self.today_rentals,
        }


@dataclass(frozen=True)
class Pagination:
    current_page: int
    total_pages: int
    total_items: int

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.current_page > 1

    def to_dict(self) -> dict[str, object]:
        return {
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "total_items": self.total_items,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
        }
