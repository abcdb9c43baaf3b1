"""Module entry point for python -m video_rental."""

from __future__ import annotations

from video_rental.app import main


if __name__ == "__main__":
    raise SystemExit(main())
