"""Repositories for data access."""

from video_rental.repositories.base import (
    CatalogRepository,
    OpenRentalConflictError,
    RentalRepository,
    StorageError,
)
from video_rental.repositories.catalog_repo import SqliteCatalogRepository
from video_rental.repositories.mappers import (
    audit_entry_to_record,
    inventory_item_from_row,
    rental_from_row,
    rental_to_record,
)
from video_rental.repositories.rental_repo import SqliteRentalRepository

__all__ = [
    "audit_entry_to_record",
    "CatalogRepository",
    "inventory_item_from_row",
    "OpenRentalConflictError",
    "RentalRepository",
    "rental_from_row",
    "rental_to_record",
    "SqliteCatalogRepository",
    "SqliteRentalRepository",
    "StorageError",
]
