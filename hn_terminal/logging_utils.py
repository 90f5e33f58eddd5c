from __future__ import annotations

import logging
import os

__all__ = ["configure_logging"]


def configure_logging(level: str, log_file: str | None = None) -> None:
    """Configure the root logger with the given level and optional file output.

    The interactive screen owns the terminal, so pass a log file when running
    at DEBUG or INFO to keep records off the display.
    """
    level_name = level.upper()
    filename = os.path.expanduser(log_file) if log_file else None
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        filename=filename,
        filemode="a",
    )
