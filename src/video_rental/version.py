"""Version metadata for the video rental engine."""

__app_name__ = "VideoRental"
__company__ = "Sakila Video Store"
__version__ = "1.0.0"
