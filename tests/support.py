"""Shared fixtures for the rental engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from video_rental.db.connection import get_connection
from video_rental.db.migrations import apply_migrations
from video_rental.domain.models import Rental, RentalStatus
from video_rental.repositories import (
    SqliteCatalogRepository,
    SqliteRentalRepository,
    StorageError,
)
from video_rental.services.rental_service import RentalService
from video_rental.settings import EngineSettings

START = datetime(2024, 3, 1, 10, 0, 0)
CUSTOMER_ID = 7
OTHER_CUSTOMER_ID = 8
STAFF_ID = 1


class FrozenClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class Engine:
    """An in-memory database wired to a rental service."""

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        db_path: Path | str = ":memory:",
    ) -> None:
        self.clock = FrozenClock()
        self.connection = get_connection(db_path)
        apply_migrations(self.connection)
        self.catalog = SqliteCatalogRepository(self.connection)
        self.rentals = SqliteRentalRepository(self.connection)
        self.service = RentalService(
            self.rentals, self.catalog, settings=settings, clock=self.clock
        )

    def add_copy(
        self, title: str = "Academy Dinosaur", rate: float = 2.99, duration: int = 3
    ) -> int:
        film_id = self.catalog.add_film(title, rate, duration)
        return self.catalog.add_inventory_item(film_id)

    def rental(self, rental_id: int) -> Rental:
        rental = self.rentals.find_by_id(rental_id)
        assert rental is not None
        return rental

    def create_pending(self, inventory_id: int, customer_id: int = CUSTOMER_ID) -> int:
        result = self.service.create(customer_id, inventory_id)
        assert result.success, result.message
        return result.data["rental_id"]

    def create_rented(self, inventory_id: int, customer_id: int = CUSTOMER_ID) -> int:
        rental_id = self.create_pending(inventory_id, customer_id)
        amount = self.rental(rental_id).amount
        assert self.service.pay(rental_id, customer_id, amount).success
        assert self.service.checkout(rental_id, STAFF_ID).success
        return rental_id

    def force_status(self, rental_id: int, status: RentalStatus) -> None:
        self.connection.execute(
            "UPDATE rentals SET status = ? WHERE rental_id = ?",
            (status.value, rental_id),
        )
        self.connection.commit()

    def close(self) -> None:
        self.connection.close()


class BrokenRentalRepository(SqliteRentalRepository):
    """Rental repository whose selected methods fail like a lost connection."""

    def __init__(self, connection, failing: set[str]) -> None:
        super().__init__(connection)
        self._failing = failing

    def __getattribute__(self, name: str):
        if not name.startswith("_") and name in object.__getattribute__(self, "_failing"):
            def fail(*args, **kwargs):
                raise StorageError(f"{name} unavailable")

            return fail
        return object.__getattribute__(self, name)
