"""Seed demo data into the video rental SQLite database."""

from __future__ import annotations

import argparse
import random
import sqlite3
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from video_rental.db.connection import get_connection  # noqa: E402
from video_rental.db.migrations import apply_migrations  # noqa: E402
from video_rental.domain.models import (  # noqa: E402
    PROCESSING_STATUSES,
    NewRental,
    RentalStatus,
)
from video_rental.domain.pricing import compute_amount  # noqa: E402
from video_rental.paths import get_db_path  # noqa: E402
from video_rental.repositories import (  # noqa: E402
    SqliteCatalogRepository,
    SqliteRentalRepository,
)

SEED_TAG = "Seed Demo"
DEFAULT_SEED = 42
CUSTOMER_IDS = range(1, 26)
STAFF_IDS = (1, 2)


@dataclass(frozen=True)
class FilmSeed:
    title: str
    category: str
    rental_rate: float
    rental_duration: int
    copies: int


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed demo data for the rental engine")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Remove the current database and recreate it before seeding.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=DEFAULT_SEED,
        help="Seed for the random generator.",
    )
    return parser.parse_args()


def _load_seed_films() -> list[FilmSeed]:
    return [
        FilmSeed("Academy Dinosaur", "Documentary", 0.99, 6, 3),
        FilmSeed("Ace Goldfinger", "Horror", 4.99, 3, 2),
        FilmSeed("Adaptation Holes", "Documentary", 2.99, 7, 2),
        FilmSeed("Affair Prejudice", "Horror", 2.99, 5, 4),
        FilmSeed("African Egg", "Family", 2.99, 6, 1),
        FilmSeed("Agent Truman", "Foreign", 2.99, 3, 2),
        FilmSeed("Airplane Sierra", "Comedy", 4.99, 6, 2),
        FilmSeed("Airport Pollock", "Horror", 4.99, 6, 1),
        FilmSeed("Alabama Devil", "Horror", 2.99, 3, 3),
        FilmSeed("Aladdin Calendar", "Sports", 4.99, 6, 2),
    ]


def _seed_exists(connection: sqlite3.Connection) -> bool:
    row = connection.execute(
        "SELECT 1 FROM films WHERE description = ? LIMIT 1",
        (SEED_TAG,),
    ).fetchone()
    return row is not None


def _pick_status(rng: random.Random) -> RentalStatus:
    return rng.choices(
        [
            RentalStatus.RETURNED,
            RentalStatus.RENTED,
            RentalStatus.PAID,
            RentalStatus.PENDING,
            RentalStatus.RESERVED,
            RentalStatus.IN_BEHANDELING,
            RentalStatus.CANCELLED,
        ],
        weights=[50, 20, 8, 8, 4, 3, 7],
    )[0]


def _seed_rentals(
    rng: random.Random,
    rentals: SqliteRentalRepository,
    inventory: list[tuple[int, FilmSeed]],
    now: datetime,
) -> dict[str, int]:
    counts: dict[str, int] = {}
    open_copies: set[int] = set()
    for _ in range(80):
        inventory_id, film = rng.choice(inventory)
        status = _pick_status(rng)
        holds_copy = status in (
            RentalStatus.PAID,
            RentalStatus.RENTED,
            RentalStatus.RETURNED,
        )
        if holds_copy and inventory_id in open_copies:
            status = RentalStatus.CANCELLED
        elif status in (RentalStatus.PAID, RentalStatus.RENTED):
            open_copies.add(inventory_id)

        rental_date = now - timedelta(days=rng.randint(0, 45), hours=rng.randint(0, 23))
        due_date = None
        if status not in PROCESSING_STATUSES and status != RentalStatus.CANCELLED:
            due_date = rental_date + timedelta(days=film.rental_duration)

        insert_status = RentalStatus.RENTED if status == RentalStatus.RETURNED else status
        rental_id = rentals.create(
            NewRental(
                inventory_id=inventory_id,
                customer_id=rng.choice(CUSTOMER_IDS),
                staff_id=rng.choice(STAFF_IDS),
                rental_date=rental_date,
                amount=compute_amount(film.rental_rate),
                status=insert_status,
                due_date=due_date,
            )
        )
        if status == RentalStatus.RETURNED:
            returned_at = rental_date + timedelta(
                days=rng.randint(1, film.rental_duration + 3)
            )
            rentals.update_status(
                rental_id,
                RentalStatus.RETURNED,
                rng.choice(STAFF_IDS),
                expected_status=RentalStatus.RENTED,
                return_date=min(returned_at, now),
            )
        counts[status.value] = counts.get(status.value, 0) + 1
    return counts


def main() -> None:
    args = _parse_args()
    rng = random.Random(args.seed)

    db_path = get_db_path()
    if args.reset and db_path.exists():
        db_path.unlink()
        print(f"Database removed: {db_path}")

    print(f"Using database: {db_path}")
    connection = get_connection(db_path)
    try:
        apply_migrations(connection)
        if _seed_exists(connection) and not args.reset:
            print("Seed data already present. Use --reset to recreate the database.")
            return

        catalog = SqliteCatalogRepository(connection)
        rentals = SqliteRentalRepository(connection)
        inventory: list[tuple[int, FilmSeed]] = []
        films = _load_seed_films()
        for film in films:
            film_id = catalog.add_film(
                title=film.title,
                rental_rate=film.rental_rate,
                rental_duration=film.rental_duration,
                description=SEED_TAG,
                category=film.category,
            )
            for _ in range(film.copies):
                inventory.append((catalog.add_inventory_item(film_id), film))

        counts = _seed_rentals(rng, rentals, inventory, datetime.now())

        print("\nSeed finished:")
        print(f"Films: {len(films)}")
        print(f"Inventory copies: {len(inventory)}")
        for status, count in sorted(counts.items()):
            print(f"Rentals {status}: {count}")
    finally:
        connection.close()


if __name__ == "__main__":
    main()
