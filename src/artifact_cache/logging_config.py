"""Logging configuration for the cache client.

Logs go to stderr so they interleave with CI step output; an optional
log file keeps a full debug trace across runs.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s"


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the ``artifact_cache`` logger.

    Args:
        level: Level for the stderr handler (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file that receives DEBUG and above

    Returns:
        Configured package logger
    """
    logger = logging.getLogger("artifact_cache")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(level.upper())
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.debug(f"Log file: {log_file}")

    return logger
