"""Filesystem paths for the video rental engine."""

from __future__ import annotations

import os
from pathlib import Path

from video_rental.config import (
    APP_DATA_DIRNAME,
    APP_HOME_ENV,
    CONFIG_FILENAME,
    DB_FILENAME,
    LOGS_DIRNAME,
)


def _ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_app_data_dir() -> Path:
    """Create and return the data directory for the current user.

    ``VIDEO_RENTAL_HOME`` points the engine at an explicit directory, which is
    how deployments and tests keep their databases apart.
    """
    override = os.getenv(APP_HOME_ENV)
    if override:
        return _ensure_dir(Path(override))
    return _ensure_dir(Path.home() / ".video_rental" / APP_DATA_DIRNAME)


def get_db_path() -> Path:
    """Return the path to the SQLite database file."""
    return get_app_data_dir() / DB_FILENAME


def get_logs_dir() -> Path:
    """Create and return the log directory inside the data folder."""
    return _ensure_dir(get_app_data_dir() / LOGS_DIRNAME)


def get_config_path() -> Path:
    """Return the path to the JSON settings file."""
    return get_app_data_dir() / CONFIG_FILENAME
