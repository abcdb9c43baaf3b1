"""Storage contracts the rental engine depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from video_rental.domain.models import (
    CustomerRentalStats,
    InventoryItem,
    NewRental,
    Rental,
    RentalAuditEntry,
    RentalStatus,
)


class StorageError(Exception):
    """Raised when the storage backend fails (connection loss, bad data)."""


class OpenRentalConflictError(Exception):
    """Raised when a write would give a copy a second open rental."""

    def __init__(self, inventory_id: Optional[int] = None) -> None:
        self.inventory_id = inventory_id
        super().__init__(f"Inventory item {inventory_id} already has an open rental")


class CatalogRepository(ABC):
    """Read-only access to inventory copies and their films."""

    @abstractmethod
    def get_inventory_item(self, inventory_id: int) -> Optional[InventoryItem]:
        ...


class RentalRepository(ABC):
    """Persistence for rental records.

    Implementations must reject any write that leaves two rentals of the same
    inventory item open at once by raising ``OpenRentalConflictError``, and
    must apply status writes only when the stored status still equals
    ``expected_status``.
    """

    @abstractmethod
    def find_by_id(self, rental_id: int) -> Optional[Rental]:
        ...

    @abstractmethod
    def find_by_customer_id(
        self, customer_id: int, limit: int, offset: int
    ) -> list[Rental]:
        ...

    @abstractmethod
    def count_by_customer_id(self, customer_id: int) -> int:
        ...

    @abstractmethod
    def find_open_by_customer(self, customer_id: int) -> list[Rental]:
        ...

    @abstractmethod
    def count_open_by_inventory(self, inventory_id: int) -> int:
        ...

    @abstractmethod
    def create(self, new_rental: NewRental) -> int:
        """Insert a rental and return its id."""

    @abstractmethod
    def update_status(
        self,
        rental_id: int,
        status: RentalStatus,
        staff_id: Optional[int] = None,
        *,
        expected_status: RentalStatus,
        return_date: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
        audit: Optional[RentalAuditEntry] = None,
    ) -> int:
        """Compare-and-swap the status; return the affected row count.

        When ``audit`` is given it is stored in the same transaction, and only
        if a row was updated.
        """

    @abstractmethod
    def update_due_date(
        self,
        rental_id: int,
        due_date: datetime,
        staff_id: Optional[int] = None,
        *,
        extension_count: Optional[int] = None,
        expected_extension_count: Optional[int] = None,
        audit: Optional[RentalAuditEntry] = None,
    ) -> int:
        """Move the due date of a rental that is neither returned nor cancelled."""

    @abstractmethod
    def delete(
        self,
        rental_id: int,
        *,
        expected_status: Optional[RentalStatus] = None,
        audit: Optional[RentalAuditEntry] = None,
    ) -> int:
        ...

    @abstractmethod
    def list_open_rentals(self) -> list[Rental]:
        ...

    @abstractmethod
    def list_by_status(self, statuses: Iterable[RentalStatus]) -> list[Rental]:
        ...

    @abstractmethod
    def list_recent(self, limit: int) -> list[Rental]:
        ...

    @abstractmethod
    def list_all(
        self, limit: int, offset: int, status: Optional[RentalStatus] = None
    ) -> list[Rental]:
        ...

    @abstractmethod
    def count_all(self, status: Optional[RentalStatus] = None) -> int:
        ...

    @abstractmethod
    def count_created_since(self, since: datetime) -> int:
        ...

    @abstractmethod
    def get_customer_stats(self, customer_id: int) -> CustomerRentalStats:
        ...

    @abstractmethod
    def add_audit_entry(self, entry: RentalAuditEntry) -> int:
        ...

    @abstractmethod
    def list_audit_entries(self, rental_id: int) -> list[RentalAuditEntry]:
        ...
