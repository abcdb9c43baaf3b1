"""Domain models for the video rental engine."""

from video_rental.domain.models import (
    OPEN_STATUSES,
    PROCESSING_STATUSES,
    TERMINAL_STATUSES,
    Actor,
    ActorRole,
    Availability,
    CustomerRentalStats,
    InventoryItem,
    NewRental,
    Pagination,
    Rental,
    RentalAuditEntry,
    RentalStatus,
    StaffDashboardStats,
)

__all__ = [
    "Actor",
    "ActorRole",
    "Availability",
    "CustomerRentalStats",
    "InventoryItem",
    "NewRental",
    "OPEN_STATUSES",
    "PROCESSING_STATUSES",
    "Pagination",
    "Rental",
    "RentalAuditEntry",
    "RentalStatus",
    "StaffDashboardStats",
    "TERMINAL_STATUSES",
]
