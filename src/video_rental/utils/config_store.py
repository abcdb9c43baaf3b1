"""JSON storage for engine settings."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from video_rental.logging_config import get_logger


def load_config_data(config_path: Path) -> dict[str, Any]:
    """Load settings JSON from disk; missing or unreadable files yield {}."""
    if not config_path.exists():
        return {}
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        get_logger(__name__).warning(
            "Ignoring unreadable settings file %s", config_path
        )
        return {}
    if isinstance(data, dict):
        return data
    return {}


def save_config_data(config_path: Path, data: dict[str, Any]) -> None:
    """Write settings JSON next to the target, then swap it into place."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = config_path.with_suffix(config_path.suffix + ".tmp")
    temp_path.write_text(
        json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )
    temp_path.replace(config_path)
