"""Core package for the channel monitor."""

from channel_monitor.core.config import Settings, get_settings, get_settings_with_yaml
from channel_monitor.core.exceptions import (
    ChannelAlreadyMonitoredError,
    ChannelInfoError,
    ChannelMonitorError,
    ChannelNotFoundError,
    InvalidChannelUrlError,
    InvalidStatusTransitionError,
    RepositoryError,
    ScanCancelledError,
    ScanInProgressError,
    VideoNotFoundError,
)
from channel_monitor.core.http_session import close_all_sessions, get, get_session
from channel_monitor.core.logging_config import get_logger, log_channel_scan_event, setup_logging

__all__ = [
    "Settings",
    "get_settings",
    "get_settings_with_yaml",
    # Exceptions
    "ChannelMonitorError",
    "ChannelAlreadyMonitoredError",
    "ChannelNotFoundError",
    "VideoNotFoundError",
    "InvalidChannelUrlError",
    "ChannelInfoError",
    "InvalidStatusTransitionError",
    "ScanInProgressError",
    "ScanCancelledError",
    "RepositoryError",
    # Logging
    "setup_logging",
    "get_logger",
    "log_channel_scan_event",
    # HTTP
    "get_session",
    "close_all_sessions",
    "get",
]
