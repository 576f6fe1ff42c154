"""Structured logging configuration for the channel monitor."""

import logging
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

console = Console(stderr=True)

ROOT_LOGGER_NAME = "channel_monitor"

# Module-level logger
logger: logging.Logger | None = None


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    rich_tracebacks: bool = True,
) -> logging.Logger:
    """
    Configure structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        rich_tracebacks: Enable rich traceback formatting

    Returns:
        Configured logger instance
    """
    global logger

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    # Rich console handler (for CLI output)
    rich_handler = RichHandler(
        console=console,
        rich_tracebacks=rich_tracebacks,
        tracebacks_show_locals=(level.upper() == "DEBUG"),
        markup=True,
    )
    rich_handler.setLevel(getattr(logging, level.upper()))
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    # Prevent logging to root logger
    logger.propagate = False

    logger.debug(f"Logging initialized (level={level})")

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance.

    Child loggers propagate to the ``channel_monitor`` logger, so handlers are
    only attached once by :func:`setup_logging`.

    Args:
        name: Logger name relative to the application logger

    Returns:
        Logger instance
    """
    if name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def log_channel_scan_event(
    logger_instance: logging.Logger,
    channel_id: str,
    channel_name: str,
    event: str,
    scan_kind: str | None = None,
    videos_fetched: int | None = None,
    videos_new: int | None = None,
    error: str | None = None,
) -> None:
    """
    Log channel scan events.

    Args:
        logger_instance: Logger to use
        channel_id: YouTube channel ID
        channel_name: Channel display name
        event: Event type (started, completed, failed, cancelled)
        scan_kind: "manual" or "idle"
        videos_fetched: Number of listing entries consumed
        videos_new: Number of new videos merged
        error: Error message if failed
    """
    extra: dict[str, Any] = {
        "channel_id": channel_id,
        "channel_name": channel_name,
        "event": event,
    }

    if scan_kind:
        extra["scan_kind"] = scan_kind
    if videos_fetched is not None:
        extra["videos_fetched"] = videos_fetched
    if videos_new is not None:
        extra["videos_new"] = videos_new
    if error:
        extra["error"] = error

    label = escape(channel_name or channel_id)

    if event == "failed":
        logger_instance.error(f"Channel scan failed: {label}: {escape(error or '')}", extra=extra)
    elif event == "cancelled":
        logger_instance.warning(f"Channel scan cancelled: {label}", extra=extra)
    elif event == "completed":
        logger_instance.info(
            f"Channel scan complete: {label} ({videos_new or 0} new of {videos_fetched or 0})",
            extra=extra,
        )
    else:
        logger_instance.debug(f"Channel scan started: {label}", extra=extra)
