"""
Snapcheck Backend — Logging Configuration
===========================================

What:  One logging setup shared by the API server and the job scripts.
How:   Root logger on stdout (containers capture it) with a single line
       format; noisy third-party loggers are raised to WARNING.

Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
"""

import logging
import sys

from app.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

NOISY_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "httpcore",
    "httpx",
    "stripe",
)


def setup_logging() -> None:
    """Configure the root logger. Safe to call more than once."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
