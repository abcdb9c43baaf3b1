"""SQLite row mappers for domain models."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, time
from typing import Any, Dict, Optional

from dateutil import parser

from video_rental.domain.models import (
    InventoryItem,
    Rental,
    RentalAuditEntry,
    RentalStatus,
)
from video_rental.repositories.base import StorageError


def _row_value(row: sqlite3.Row, key: str) -> Any:
    return row[key] if key in row.keys() else None


def to_iso(value: Optional[datetime | date]) -> Optional[str]:
    """Serialize a timestamp the way it is stored (ISO-8601, seconds)."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    return value.isoformat(timespec="seconds")


def parse_timestamp(value: Optional[str | datetime]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return parser.isoparse(str(value))


def _parse_status(raw: Any, rental_id: Any) -> RentalStatus:
    try:
        return RentalStatus(raw)
    except ValueError as exc:
        raise StorageError(
            f"Rental {rental_id} has unknown status {raw!r}; migrate the data "
            "to a supported status"
        ) from exc


def rental_from_row(row: sqlite3.Row) -> Rental:
    rental_id = row["rental_id"]
    rate = _row_value(row, "rental_rate")
    duration = _row_value(row, "rental_duration")
    return Rental(
        id=rental_id,
        inventory_id=row["inventory_id"],
        customer_id=row["customer_id"],
        staff_id=_row_value(row, "staff_id"),
        rental_date=parse_timestamp(row["rental_date"]),
        due_date=parse_timestamp(_row_value(row, "due_date")),
        return_date=parse_timestamp(_row_value(row, "return_date")),
        amount=float(row["amount"] or 0),
        status=_parse_status(row["status"], rental_id),
        extension_count=int(_row_value(row, "extension_count") or 0),
        film_id=_row_value(row, "film_id"),
        film_title=_row_value(row, "film_title"),
        rental_rate=float(rate) if rate is not None else None,
        rental_duration=int(duration) if duration is not None else None,
        store_id=_row_value(row, "store_id"),
        last_update=_row_value(row, "last_update"),
    )


def rental_to_record(rental: Rental) -> Dict[str, Any]:
    return {
        "rental_id": rental.id,
        "inventory_id": rental.inventory_id,
        "customer_id": rental.customer_id,
        "staff_id": rental.staff_id,
        "rental_date": to_iso(rental.rental_date),
        "due_date": to_iso(rental.due_date),
        "return_date": to_iso(rental.return_date),
        "amount": rental.amount,
        "status": rental.status.value,
        "extension_count": rental.extension_count,
        "film_id": rental.film_id,
        "film_title": rental.film_title,
        "rental_rate": rental.rental_rate,
        "rental_duration": rental.rental_duration,
        "store_id": rental.store_id,
    }


def inventory_item_from_row(row: sqlite3.Row) -> InventoryItem:
    return InventoryItem(
        inventory_id=row["inventory_id"],
        film_id=row["film_id"],
        store_id=row["store_id"],
        title=row["title"],
        rental_rate=float(row["rental_rate"]),
        rental_duration=int(row["rental_duration"]),
    )


def audit_entry_from_row(row: sqlite3.Row) -> RentalAuditEntry:
    return RentalAuditEntry(
        id=_row_value(row, "audit_id"),
        rental_id=row["rental_id"],
        action=row["action"],
        actor_id=_row_value(row, "actor_id"),
        reason=_row_value(row, "reason"),
        old_value=_row_value(row, "old_value"),
        new_value=_row_value(row, "new_value"),
        created_at=row["created_at"],
    )


def audit_entry_to_record(entry: RentalAuditEntry) -> Dict[str, Any]:
    return {
        "audit_id": entry.id,
        "rental_id": entry.rental_id,
        "action": entry.action,
        "actor_id": entry.actor_id,
        "reason": entry.reason,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "created_at": entry.created_at,
    }
