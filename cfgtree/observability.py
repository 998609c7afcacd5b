"""
Logging setup for applications using cfgtree.

cfgtree modules only create module loggers; applications call
setup_logging() once at startup to install a handler.
"""

from __future__ import annotations

import logging
from typing import Optional

import json_log_formatter

from .config import LibraryConfig

NOISY_LOGGERS = ("botocore", "aiobotocore", "httpx", "httpcore")

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: Optional[LibraryConfig] = None) -> logging.Handler:
    """Configure root logging based on configuration.

    Args:
        config: Library configuration (defaults to LibraryConfig.from_env())

    Returns:
        The installed handler
    """
    config = config or LibraryConfig.from_env()
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    formatter: logging.Formatter
    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler
