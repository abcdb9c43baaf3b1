"""Engine configuration."""

from __future__ import annotations

from dataclasses import dataclass

from video_rental.version import __app_name__, __company__, __version__

APP_NAME = __app_name__
APP_DATA_DIRNAME = "VideoRental"
APP_HOME_ENV = "VIDEO_RENTAL_HOME"
DB_FILENAME = "video_rental.db"
LOGS_DIRNAME = "logs"
LOG_FILENAME = "engine.log"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3
CONFIG_FILENAME = "config.json"

LATE_FEE_PER_DAY = 1.00
DEFAULT_EXTENSION_DAYS = 7
DEFAULT_MAX_EXTENSIONS = 2

CUSTOMER_PAGE_SIZE = 10
STAFF_PAGE_SIZE = 20
RECENT_RENTALS_LIMIT = 10

GENERIC_FAILURE_MESSAGE = (
    "Something went wrong while processing your request. Please try again later."
)


@dataclass(frozen=True)
class AppConfig:
    """Static configuration values for the engine."""

    app_name: str = APP_NAME
    organization_name: str = __company__
    version: str = __version__
