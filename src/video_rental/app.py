"""Application entry point."""

from __future__ import annotations

import argparse
import json
import sqlite3
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from video_rental.config import AppConfig, RECENT_RENTALS_LIMIT
from video_rental.db.connection import get_connection
from video_rental.db.migrations import apply_migrations
from video_rental.logging_config import configure_logging, get_logger
from video_rental.paths import get_config_path, get_db_path
from video_rental.repositories import SqliteCatalogRepository, SqliteRentalRepository
from video_rental.services.inventory_service import InventoryAvailabilityChecker
from video_rental.services.rental_service import RentalService
from video_rental.services.results import OperationResult
from video_rental.settings import EngineSettings, load_engine_settings


@dataclass(frozen=True)
class EngineServices:
    """Shared repositories and services for dependency injection."""

    connection: sqlite3.Connection
    catalog: SqliteCatalogRepository
    rental_repo: SqliteRentalRepository
    availability_checker: InventoryAvailabilityChecker
    rental_service: RentalService


def build_services(
    db_path: Path | str,
    settings: Optional[EngineSettings] = None,
) -> EngineServices:
    """Open the database, bring its schema up to date and wire the services."""
    connection = get_connection(db_path)
    apply_migrations(connection)
    catalog = SqliteCatalogRepository(connection)
    rental_repo = SqliteRentalRepository(connection)
    return EngineServices(
        connection=connection,
        catalog=catalog,
        rental_repo=rental_repo,
        availability_checker=InventoryAvailabilityChecker(catalog, rental_repo),
        rental_service=RentalService(rental_repo, catalog, settings=settings),
    )


def _build_parser() -> argparse.ArgumentParser:
    config = AppConfig()
    parser = argparse.ArgumentParser(
        prog="video-rental",
        description=f"{config.app_name} rental lifecycle engine",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database file (defaults to the data directory).",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("init-db", help="Create or migrate the database.")
    commands.add_parser("overdue", help="List overdue rentals.")
    commands.add_parser("pending", help="List rentals still being processed.")
    recent = commands.add_parser("recent", help="List the latest rentals.")
    recent.add_argument("--limit", type=int, default=RECENT_RENTALS_LIMIT)
    commands.add_parser("stats", help="Show staff dashboard counters.")
    customer = commands.add_parser("customer", help="Show a customer's rentals.")
    customer.add_argument("customer_id", type=int)
    customer.add_argument("--page", type=int, default=1)
    customer.add_argument("--limit", type=int, default=10)
    details = commands.add_parser("details", help="Show a single rental.")
    details.add_argument("rental_id", type=int)
    return parser


def _emit(result: OperationResult) -> int:
    print(json.dumps(result.to_dict(), indent=2, default=str))
    return 0 if result.success else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run a command-line query against the rental engine."""
    args = _build_parser().parse_args(argv)
    configure_logging()
    logger = get_logger(__name__)

    db_path = args.db or get_db_path()
    settings = load_engine_settings(get_config_path())
    services = build_services(db_path, settings)
    logger.info("Running %s against %s", args.command, db_path)
    try:
        service = services.rental_service
        if args.command == "init-db":
            print(f"Database ready at {db_path}")
            return 0
        if args.command == "overdue":
            return _emit(service.get_overdue_rentals())
        if args.command == "pending":
            return _emit(service.get_pending_rentals())
        if args.command == "recent":
            return _emit(service.get_recent_rentals(args.limit))
        if args.command == "stats":
            return _emit(service.get_staff_stats())
        if args.command == "customer":
            return _emit(
                service.get_customer_rentals(args.customer_id, args.page, args.limit)
            )
        if args.command == "details":
            return _emit(service.get_rental_details(args.rental_id))
    finally:
        services.connection.close()
    return 2


if __name__ == "__main__":
    sys.exit(main())
