"""Logging setup for the CLI and server."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

# Chatty third-party loggers kept at WARNING unless verbose
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(is_verbose: bool = False) -> None:
    """Install a RichHandler on the root logger.

    Args:
        is_verbose: DEBUG level with source paths instead of WARNING
    """
    log_level = logging.DEBUG if is_verbose else logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicate logs if called multiple times
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.addHandler(RichHandler(
        level=log_level,
        rich_tracebacks=True,
        show_time=True,
        show_path=is_verbose,
    ))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if is_verbose else logging.WARNING)
