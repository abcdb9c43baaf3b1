"""Pluggable business policies for rental extensions and cancellations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from video_rental.config import DEFAULT_EXTENSION_DAYS, DEFAULT_MAX_EXTENSIONS


@dataclass(frozen=True)
class ExtensionPolicy:
    """How far and how often a customer may push a due date forward."""

    max_extensions: int = DEFAULT_MAX_EXTENSIONS
    increment_days: int = DEFAULT_EXTENSION_DAYS

    def __post_init__(self) -> None:
        if self.max_extensions < 0:
            raise ValueError("max_extensions must not be negative")
        if self.increment_days <= 0:
            raise ValueError("increment_days must be positive")

    def allows(self, extension_count: int) -> bool:
        return extension_count < self.max_extensions

    def next_due_date(self, current_due_date: datetime) -> datetime:
        return current_due_date + timedelta(days=self.increment_days)


@dataclass(frozen=True)
class CancellationPolicy:
    """Whether cancelling a pending rental removes the row.

    Cancelled rentals are kept with status ``cancelled`` unless
    ``delete_cancelled_pending`` is set.
    """

    delete_cancelled_pending: bool = False
