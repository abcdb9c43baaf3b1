"""Database migrations for SQLite schema versioning."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from video_rental.db.connection import transaction
from video_rental.logging_config import get_logger


@dataclass(frozen=True)
class Migration:
    version: int
    script: str


MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        script="""
        CREATE TABLE IF NOT EXISTS films (
            film_id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            description TEXT,
            category TEXT,
            rental_rate REAL NOT NULL DEFAULT 4.99 CHECK (rental_rate >= 0),
            rental_duration INTEGER NOT NULL DEFAULT 3 CHECK (rental_duration > 0),
            last_update TEXT
        );

        CREATE TABLE IF NOT EXISTS inventory (
            inventory_id INTEGER PRIMARY KEY AUTOINCREMENT,
            film_id INTEGER NOT NULL,
            store_id INTEGER NOT NULL DEFAULT 1,
            last_update TEXT,
            FOREIGN KEY (film_id) REFERENCES films(film_id)
        );

        CREATE TABLE IF NOT EXISTS rentals (
            rental_id INTEGER PRIMARY KEY AUTOINCREMENT,
            rental_date TEXT NOT NULL,
            inventory_id INTEGER NOT NULL,
            customer_id INTEGER NOT NULL,
            staff_id INTEGER,
            due_date TEXT,
            return_date TEXT,
            amount REAL NOT NULL DEFAULT 0 CHECK (amount >= 0),
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN (
                    'pending',
                    'reserved',
                    'in_behandeling',
                    'paid',
                    'rented',
                    'returned',
                    'cancelled'
                )
            ),
            last_update TEXT,
            FOREIGN KEY (inventory_id) REFERENCES inventory(inventory_id),
            CHECK (return_date IS NULL OR status = 'returned')
        );

        CREATE INDEX IF NOT EXISTS idx_inventory_film_id
            ON inventory(film_id);
        CREATE INDEX IF NOT EXISTS idx_rentals_customer_id
            ON rentals(customer_id);
        CREATE INDEX IF NOT EXISTS idx_rentals_inventory_id
            ON rentals(inventory_id);
        CREATE INDEX IF NOT EXISTS idx_rentals_rental_date
            ON rentals(rental_date);
        """,
    ),
    Migration(
        version=2,
        script="""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_rentals_open_inventory
            ON rentals(inventory_id)
            WHERE return_date IS NULL AND status IN ('paid', 'rented');
        CREATE INDEX IF NOT EXISTS idx_rentals_status
            ON rentals(status);
        """,
    ),
    Migration(
        version=3,
        script="""
        ALTER TABLE rentals
            ADD COLUMN extension_count INTEGER NOT NULL DEFAULT 0;

        CREATE TABLE IF NOT EXISTS rental_audit (
            audit_id INTEGER PRIMARY KEY AUTOINCREMENT,
            rental_id INTEGER NOT NULL,
            action TEXT NOT NULL,
            actor_id INTEGER,
            reason TEXT,
            old_value TEXT,
            new_value TEXT,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_rental_audit_rental_id
            ON rental_audit(rental_id, created_at);
        """,
    ),
]

LATEST_VERSION = MIGRATIONS[-1].version


def _fetch_schema_version(connection: sqlite3.Connection) -> int:
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS app_meta (
            schema_version INTEGER NOT NULL
        );
        """
    )
    row = connection.execute(
        "SELECT schema_version FROM app_meta LIMIT 1"
    ).fetchone()
    if row is None:
        connection.execute("INSERT INTO app_meta (schema_version) VALUES (0)")
        return 0
    return int(row[0])


def get_schema_version(connection: sqlite3.Connection) -> int:
    """Return the schema version recorded in the database."""
    with transaction(connection):
        return _fetch_schema_version(connection)


def apply_migrations(connection: sqlite3.Connection) -> int:
    """Apply pending database migrations and return the resulting version."""
    logger = get_logger("migrations")
    current_version = get_schema_version(connection)

    for migration in MIGRATIONS:
        if migration.version <= current_version:
            continue
        # executescript commits any pending transaction before running.
        try:
            connection.executescript(
                "BEGIN;\n"
                + migration.script
                + f"\nUPDATE app_meta SET schema_version = {migration.version};\n"
                + "COMMIT;"
            )
        except sqlite3.Error:
            if connection.in_transaction:
                connection.rollback()
            logger.exception("Failed to apply migration version=%s", migration.version)
            raise
        logger.info("Applied migration version=%s", migration.version)
        current_version = migration.version
    return current_version
