"""Custom exceptions for the channel monitor."""


class ChannelMonitorError(Exception):
    """Base exception for channel monitor errors."""

    pass


class ChannelAlreadyMonitoredError(ChannelMonitorError):
    """Channel ID is already present in the repository."""

    def __init__(self, channel_id: str, channel_name: str = ""):
        self.channel_id = channel_id
        self.channel_name = channel_name
        label = channel_name or channel_id
        super().__init__(f"Channel '{label}' is already being monitored")


class ChannelNotFoundError(ChannelMonitorError):
    """No monitored channel with the given ID."""

    pass


class VideoNotFoundError(ChannelMonitorError):
    """No video with the given ID in the channel."""

    pass


class InvalidChannelUrlError(ChannelMonitorError):
    """Input does not look like a supported channel reference."""

    pass


class ChannelInfoError(ChannelMonitorError):
    """Failed to resolve channel identity from yt-dlp."""

    pass


class InvalidStatusTransitionError(ChannelMonitorError):
    """Action is not allowed from the video's current status."""

    def __init__(self, status, action):
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action.value} a video with status {status.value}")


class ScanInProgressError(ChannelMonitorError):
    """A scan is already running in this process."""

    pass


class ScanCancelledError(ChannelMonitorError):
    """A manual scan was cancelled by the user."""

    pass


class RepositoryError(ChannelMonitorError):
    """Persisted channel store could not be read or written."""

    pass
