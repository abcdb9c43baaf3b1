"""Persisted engine settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from video_rental.config import LATE_FEE_PER_DAY
from video_rental.logging_config import get_logger
from video_rental.services.policies import CancellationPolicy, ExtensionPolicy
from video_rental.utils.config_store import load_config_data, save_config_data

SETTINGS_KEY = "rentals"


@dataclass(frozen=True)
class EngineSettings:
    late_fee_per_day: float = LATE_FEE_PER_DAY
    extension: ExtensionPolicy = field(default_factory=ExtensionPolicy)
    cancellation: CancellationPolicy = field(default_factory=CancellationPolicy)


def _settings_from_dict(data: dict[str, Any]) -> EngineSettings:
    defaults = EngineSettings()
    extension = data.get("extension") or {}
    return EngineSettings(
        late_fee_per_day=float(data.get("late_fee_per_day", defaults.late_fee_per_day)),
        extension=ExtensionPolicy(
            max_extensions=int(
                extension.get("max_extensions", defaults.extension.max_extensions)
            ),
            increment_days=int(
                extension.get("increment_days", defaults.extension.increment_days)
            ),
        ),
        cancellation=CancellationPolicy(
            delete_cancelled_pending=bool(
                data.get(
                    "delete_cancelled_pending",
                    defaults.cancellation.delete_cancelled_pending,
                )
            )
        ),
    )


def load_engine_settings(config_path: Path) -> EngineSettings:
    """Load engine settings from disk, falling back to defaults."""
    data = load_config_data(config_path).get(SETTINGS_KEY)
    if not isinstance(data, dict):
        return EngineSettings()
    try:
        return _settings_from_dict(data)
    except (TypeError, ValueError, AttributeError):
        get_logger(__name__).warning(
            "Invalid rental settings in %s; using defaults", config_path
        )
        return EngineSettings()


def save_engine_settings(config_path: Path, settings: EngineSettings) -> None:
    """Save engine settings to disk, keeping unrelated keys."""
    payload = load_config_data(config_path)
    payload[SETTINGS_KEY] = {
        "late_fee_per_day": settings.late_fee_per_day,
        "extension": {
            "max_extensions": settings.extension.max_extensions,
            "increment_days": settings.extension.increment_days,
        },
        "delete_cancelled_pending": settings.cancellation.delete_cancelled_pending,
    }
    save_config_data(config_path, payload)
