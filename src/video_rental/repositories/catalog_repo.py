"""Repository for the film catalog and inventory copies."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional

from video_rental.db.connection import transaction
from video_rental.domain.models import InventoryItem
from video_rental.logging_config import get_logger
from video_rental.repositories.base import CatalogRepository, StorageError
from video_rental.repositories.mappers import inventory_item_from_row


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


class SqliteCatalogRepository(CatalogRepository):
    """Catalog lookups backed by the ``films`` and ``inventory`` tables."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection
        self._connection.row_factory = sqlite3.Row
        self._logger = get_logger(self.__class__.__name__)

    def get_inventory_item(self, inventory_id: int) -> Optional[InventoryItem]:
        try:
            row = self._connection.execute(
                """
                SELECT
                    i.inventory_id,
                    i.film_id,
                    i.store_id,
                    f.title,
                    f.rental_rate,
                    f.rental_duration
                FROM inventory i
                JOIN films f ON f.film_id = i.film_id
                WHERE i.inventory_id = ?
                """,
                (inventory_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            self._logger.exception(
                "Failed to fetch inventory item id=%s", inventory_id
            )
            raise StorageError("Failed to fetch inventory item") from exc
        return inventory_item_from_row(row) if row else None

    def add_film(
        self,
        title: str,
        rental_rate: float,
        rental_duration: int,
        description: Optional[str] = None,
        category: Optional[str] = None,
    ) -> int:
        try:
            with transaction(self._connection):
                cursor = self._connection.execute(
                    """
                    INSERT INTO films (
                        title,
                        description,
                        category,
                        rental_rate,
                        rental_duration,
                        last_update
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        title,
                        description,
                        category,
                        rental_rate,
                        rental_duration,
                        _now_iso(),
                    ),
                )
        except sqlite3.Error as exc:
            self._logger.exception("Failed to create film title=%s", title)
            raise StorageError("Failed to create film") from exc
        return int(cursor.lastrowid)

    def add_inventory_item(self, film_id: int, store_id: int = 1) -> int:
        try:
            with transaction(self._connection):
                cursor = self._connection.execute(
                    """
                    INSERT INTO inventory (film_id, store_id, last_update)
                    VALUES (?, ?, ?)
                    """,
                    (film_id, store_id, _now_iso()),
                )
        except sqlite3.Error as exc:
            self._logger.exception(
                "Failed to create inventory item film_id=%s", film_id
            )
            raise StorageError("Failed to create inventory item") from exc
        return int(cursor.lastrowid)

    def update_rental_rate(self, film_id: int, rental_rate: float) -> bool:
        try:
            with transaction(self._connection):
                cursor = self._connection.execute(
                    """
                    UPDATE films
                    SET rental_rate = ?,
                        last_update = ?
                    WHERE film_id = ?
                    """,
                    (rental_rate, _now_iso(), film_id),
                )
        except sqlite3.Error as exc:
            self._logger.exception("Failed to update rate film_id=%s", film_id)
            raise StorageError("Failed to update film rate") from exc
        return cursor.rowcount > 0
