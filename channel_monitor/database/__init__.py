"""Storage for monitored channels and read access to the download history.

Usage:
    repo = ChannelRepository(settings.data_path)
    history = DownloadHistory(settings.history_path)
"""

from channel_monitor.database.history import DownloadHistory, DownloadHistoryLookup, EmptyHistory
from channel_monitor.database.repository import ChannelRepository

__all__ = [
    "ChannelRepository",
    "DownloadHistory",
    "DownloadHistoryLookup",
    "EmptyHistory",
]
