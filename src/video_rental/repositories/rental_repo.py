"""Repository for rental persistence."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Iterable, Optional

from video_rental.db.connection import transaction
from video_rental.domain.models import (
    OPEN_STATUSES,
    CustomerRentalStats,
    NewRental,
    Rental,
    RentalAuditEntry,
    RentalStatus,
)
from video_rental.logging_config import get_logger
from video_rental.repositories.base import (
    OpenRentalConflictError,
    RentalRepository,
    StorageError,
)
from video_rental.repositories.mappers import (
    audit_entry_from_row,
    rental_from_row,
    to_iso,
)

OPEN_INVENTORY_CONSTRAINT = "rentals.inventory_id"

RENTAL_SELECT = """
    SELECT
        r.*,
        i.film_id,
        i.store_id,
        f.title AS film_title,
        f.rental_rate,
        f.rental_duration
    FROM rentals r
    JOIN inventory i ON i.inventory_id = r.inventory_id
    JOIN films f ON f.film_id = i.film_id
"""

NEWEST_FIRST = "ORDER BY r.rental_date DESC, r.rental_id DESC"


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _placeholders(values: list[object]) -> str:
    return ", ".join(["?"] * len(values))


def _is_open_conflict(exc: sqlite3.IntegrityError) -> bool:
    message = str(exc)
    return "UNIQUE" in message and OPEN_INVENTORY_CONSTRAINT in message


class SqliteRentalRepository(RentalRepository):
    """Rental data access on SQLite.

    The partial unique index ``idx_rentals_open_inventory`` is what makes the
    one-open-rental-per-copy rule atomic; this class only translates its
    violations into ``OpenRentalConflictError``.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection
        self._connection.row_factory = sqlite3.Row
        self._logger = get_logger(self.__class__.__name__)

    def _fetch_all(self, query: str, params: Iterable[object], action: str) -> list[Rental]:
        try:
            rows = self._connection.execute(query, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            self._logger.exception("Failed to %s", action)
            raise StorageError(f"Failed to {action}") from exc
        return [rental_from_row(row) for row in rows]

    def _fetch_count(self, query: str, params: Iterable[object], action: str) -> int:
        try:
            row = self._connection.execute(query, tuple(params)).fetchone()
        except sqlite3.Error as exc:
            self._logger.exception("Failed to %s", action)
            raise StorageError(f"Failed to {action}") from exc
        return int(row[0]) if row else 0

    def _write(
        self,
        query: str,
        params: tuple[object, ...],
        action: str,
        audit: Optional[RentalAuditEntry] = None,
    ) -> int:
        try:
            with transaction(self._connection):
                cursor = self._connection.execute(query, params)
                if cursor.rowcount and audit is not None:
                    self._insert_audit(audit)
        except sqlite3.IntegrityError as exc:
            if _is_open_conflict(exc):
                raise OpenRentalConflictError() from exc
            self._logger.exception("Failed to %s", action)
            raise StorageError(f"Failed to {action}") from exc
        except sqlite3.Error as exc:
            self._logger.exception("Failed to %s", action)
            raise StorageError(f"Failed to {action}") from exc
        return cursor.rowcount

    def find_by_id(self, rental_id: int) -> Optional[Rental]:
        rentals = self._fetch_all(
            f"{RENTAL_SELECT} WHERE r.rental_id = ?",
            (rental_id,),
            f"fetch rental id={rental_id}",
        )
        return rentals[0] if rentals else None

    def find_by_customer_id(
        self, customer_id: int, limit: int, offset: int
    ) -> list[Rental]:
        return self._fetch_all(
            f"""
            {RENTAL_SELECT}
            WHERE r.customer_id = ?
            {NEWEST_FIRST}
            LIMIT ? OFFSET ?
            """,
            (customer_id, limit, offset),
            f"list rentals customer_id={customer_id}",
        )

    def count_by_customer_id(self, customer_id: int) -> int:
        return self._fetch_count(
            "SELECT COUNT(*) FROM rentals WHERE customer_id = ?",
            (customer_id,),
            f"count rentals customer_id={customer_id}",
        )

    def find_open_by_customer(self, customer_id: int) -> list[Rental]:
        statuses = [status.value for status in OPEN_STATUSES]
        return self._fetch_all(
            f"""
            {RENTAL_SELECT}
            WHERE r.customer_id = ?
              AND r.return_date IS NULL
              AND r.status IN ({_placeholders(statuses)})
            ORDER BY r.rental_id
            """,
            (customer_id, *statuses),
            f"list open rentals customer_id={customer_id}",
        )

    def count_open_by_inventory(self, inventory_id: int) -> int:
        statuses = [status.value for status in OPEN_STATUSES]
        return self._fetch_count(
            f"""
            SELECT COUNT(*)
            FROM rentals
            WHERE inventory_id = ?
              AND return_date IS NULL
              AND status IN ({_placeholders(statuses)})
            """,
            (inventory_id, *statuses),
            f"count open rentals inventory_id={inventory_id}",
        )

    def create(self, new_rental: NewRental) -> int:
        timestamp = _now_iso()
        try:
            with transaction(self._connection):
                cursor = self._connection.execute(
                    """
                    INSERT INTO rentals (
                        rental_date,
                        inventory_id,
                        customer_id,
                        staff_id,
                        due_date,
                        amount,
                        status,
                        last_update
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        to_iso(new_rental.rental_date),
                        new_rental.inventory_id,
                        new_rental.customer_id,
                        new_rental.staff_id,
                        to_iso(new_rental.due_date),
                        new_rental.amount,
                        new_rental.status.value,
                        timestamp,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            if _is_open_conflict(exc):
                raise OpenRentalConflictError(new_rental.inventory_id) from exc
            self._logger.exception(
                "Failed to create rental inventory_id=%s", new_rental.inventory_id
            )
            raise StorageError("Failed to create rental") from exc
        except sqlite3.Error as exc:
            self._logger.exception(
                "Failed to create rental inventory_id=%s", new_rental.inventory_id
            )
            raise StorageError("Failed to create rental") from exc
        return int(cursor.lastrowid)

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
        return self._write(
            """
            UPDATE rentals
            SET status = ?,
                staff_id = COALESCE(?, staff_id),
                return_date = COALESCE(?, return_date),
                due_date = COALESCE(?, due_date),
                last_update = ?
            WHERE rental_id = ?
              AND status = ?
              AND return_date IS NULL
            """,
            (
                status.value,
                staff_id,
                to_iso(return_date),
                to_iso(due_date),
                _now_iso(),
                rental_id,
                expected_status.value,
            ),
            f"update rental status id={rental_id}",
            audit,
        )

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
        params: list[object] = [
            to_iso(due_date),
            staff_id,
            extension_count,
            _now_iso(),
            rental_id,
            RentalStatus.RETURNED.value,
            RentalStatus.CANCELLED.value,
        ]
        extension_clause = ""
        if expected_extension_count is not None:
            extension_clause = "AND extension_count = ?"
            params.append(expected_extension_count)
        return self._write(
            f"""
            UPDATE rentals
            SET due_date = ?,
                staff_id = COALESCE(?, staff_id),
                extension_count = COALESCE(?, extension_count),
                last_update = ?
            WHERE rental_id = ?
              AND return_date IS NULL
              AND status NOT IN (?, ?)
              {extension_clause}
            """,
            tuple(params),
            f"update rental due date id={rental_id}",
            audit,
        )

    def delete(
        self,
        rental_id: int,
        *,
        expected_status: Optional[RentalStatus] = None,
        audit: Optional[RentalAuditEntry] = None,
    ) -> int:
        params: list[object] = [rental_id]
        status_clause = ""
        if expected_status is not None:
            status_clause = "AND status = ?"
            params.append(expected_status.value)
        return self._write(
            f"DELETE FROM rentals WHERE rental_id = ? {status_clause}",
            tuple(params),
            f"delete rental id={rental_id}",
            audit,
        )

    def list_open_rentals(self) -> list[Rental]:
        statuses = [status.value for status in OPEN_STATUSES]
        return self._fetch_all(
            f"""
            {RENTAL_SELECT}
            WHERE r.return_date IS NULL
              AND r.status IN ({_placeholders(statuses)})
            ORDER BY r.rental_date, r.rental_id
            """,
            statuses,
            "list open rentals",
        )

    def list_by_status(self, statuses: Iterable[RentalStatus]) -> list[Rental]:
        values = [RentalStatus(status).value for status in statuses]
        if not values:
            return []
        return self._fetch_all(
            f"""
            {RENTAL_SELECT}
            WHERE r.status IN ({_placeholders(values)})
            {NEWEST_FIRST}
            """,
            values,
            "list rentals by status",
        )

    def list_recent(self, limit: int) -> list[Rental]:
        return self._fetch_all(
            f"{RENTAL_SELECT} {NEWEST_FIRST} LIMIT ?",
            (limit,),
            "list recent rentals",
        )

    def list_all(
        self, limit: int, offset: int, status: Optional[RentalStatus] = None
    ) -> list[Rental]:
        params: list[object] = []
        where_clause = ""
        if status is not None:
            where_clause = "WHERE r.status = ?"
            params.append(status.value)
        params.extend([limit, offset])
        return self._fetch_all(
            f"""
            {RENTAL_SELECT}
            {where_clause}
            {NEWEST_FIRST}
            LIMIT ? OFFSET ?
            """,
            params,
            "list rentals",
        )

    def count_all(self, status: Optional[RentalStatus] = None) -> int:
        if status is None:
            return self._fetch_count("SELECT COUNT(*) FROM rentals", (), "count rentals")
        return self._fetch_count(
            "SELECT COUNT(*) FROM rentals WHERE status = ?",
            (status.value,),
            "count rentals by status",
        )

    def count_created_since(self, since: datetime) -> int:
        return self._fetch_count(
            "SELECT COUNT(*) FROM rentals WHERE rental_date >= ?",
            (to_iso(since),),
            "count rentals created since",
        )

    def get_customer_stats(self, customer_id: int) -> CustomerRentalStats:
        try:
            rows = self._connection.execute(
                """
                SELECT
                    status,
                    COUNT(*) AS rental_count,
                    COALESCE(SUM(amount), 0) AS total_amount
                FROM rentals
                WHERE customer_id = ?
                GROUP BY status
                """,
                (customer_id,),
            ).fetchall()
        except sqlite3.Error as exc:
            self._logger.exception(
                "Failed to build rental stats customer_id=%s", customer_id
            )
            raise StorageError("Failed to build rental stats") from exc

        counts = {status.value: 0 for status in RentalStatus}
        amounts: dict[str, float] = {}
        for row in rows:
            counts[row["status"]] = int(row["rental_count"])
            amounts[row["status"]] = float(row["total_amount"] or 0)
        open_values = {status.value for status in OPEN_STATUSES}
        return CustomerRentalStats(
            status_counts=counts,
            total_rentals=sum(counts.values()),
            total_spent=sum(
                amount
                for status, amount in amounts.items()
                if status != RentalStatus.CANCELLED.value
            ),
            paid_amount=sum(
                amount for status, amount in amounts.items() if status in open_values
            ),
            completed_amount=amounts.get(RentalStatus.RETURNED.value, 0.0),
        )

    def _insert_audit(self, entry: RentalAuditEntry) -> int:
        cursor = self._connection.execute(
            """
            INSERT INTO rental_audit (
                rental_id,
                action,
                actor_id,
                reason,
                old_value,
                new_value,
                created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.rental_id,
                entry.action,
                entry.actor_id,
                entry.reason,
                entry.old_value,
                entry.new_value,
                entry.created_at,
            ),
        )
        return int(cursor.lastrowid)

    def add_audit_entry(self, entry: RentalAuditEntry) -> int:
        try:
            with transaction(self._connection):
                audit_id = self._insert_audit(entry)
        except sqlite3.Error as exc:
            self._logger.exception(
                "Failed to write audit entry rental_id=%s", entry.rental_id
            )
            raise StorageError("Failed to write audit entry") from exc
        return audit_id

    def list_audit_entries(self, rental_id: int) -> list[RentalAuditEntry]:
        try:
            rows = self._connection.execute(
                """
                SELECT *
                FROM rental_audit
                WHERE rental_id = ?
                ORDER BY created_at, audit_id
                """,
                (rental_id,),
            ).fetchall()
        except sqlite3.Error as exc:
            self._logger.exception(
                "Failed to list audit entries rental_id=%s", rental_id
            )
            raise StorageError("Failed to list audit entries") from exc
        return [audit_entry_from_row(row) for row in rows]
