"""Inventory availability checks."""

from __future__ import annotations

from video_rental.domain.models import Availability
from video_rental.logging_config import get_logger
from video_rental.repositories.base import CatalogRepository, RentalRepository
from video_rental.services.errors import NotFoundError

RENTED_OUT_REASON = "Currently rented out"


class InventoryAvailabilityChecker:
    """Tells whether a physical copy currently has an open rental.

    The answer is advisory: the reservation itself is made atomic by the
    repository, which refuses a second open rental for the same copy.
    """

    def __init__(
        self, catalog: CatalogRepository, rental_repo: RentalRepository
    ) -> None:
        self._catalog = catalog
        self._rental_repo = rental_repo
        self._logger = get_logger(self.__class__.__name__)

    def check_availability(self, inventory_id: int) -> Availability:
        item = self._catalog.get_inventory_item(inventory_id)
        if item is None:
            raise NotFoundError(f"Film inventory {inventory_id} not found")
        open_rentals = self._rental_repo.count_open_by_inventory(inventory_id)
        if open_rentals:
            self._logger.debug(
                "Inventory id=%s has %s open rental(s)", inventory_id, open_rentals
            )
            return Availability(available=False, reason=RENTED_OUT_REASON, item=item)
        return Availability(available=True, reason=None, item=item)
