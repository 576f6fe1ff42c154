"""JSON-file repository for monitored channels.

The repository is the only writer of ``channel_monitor.json``. Every mutating
operation rewrites the whole file; there is no partial or append format.

Usage:
    repo = ChannelRepository(settings.data_path)
    repo.add_channel(channel)
    repo.apply_video_action(channel.channel_id, video_id, VideoAction.SNOOZE)
"""

import contextlib
import json
import os
import tempfile
from datetime import date
from pathlib import Path

from pydantic import ValidationError
from rich.markup import escape

from channel_monitor.channel.schemas import Channel, Video, VideoAction, VideoStatus
from channel_monitor.channel.status import apply_action
from channel_monitor.core.exceptions import (
    ChannelAlreadyMonitoredError,
    ChannelNotFoundError,
    RepositoryError,
    VideoNotFoundError,
)
from channel_monitor.core.logging_config import get_logger

logger = get_logger("database.repository")

DATA_FILE_NAME = "channel_monitor.json"
BANNER_DIR_NAME = "ChannelBanners"


class ChannelRepository:
    """Owns the monitored channel collection and its persisted representation."""

    def __init__(self, data_dir: Path | str, file_name: str = DATA_FILE_NAME):
        self.data_dir = Path(data_dir).expanduser()
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RepositoryError(f"Cannot create data directory {self.data_dir}: {e}") from e
        self.data_path = self.data_dir / file_name
        self._channels: list[Channel] = []
        self.load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load channels from disk. A missing or corrupt file yields no channels."""
        self._channels = []

        if not self.data_path.exists():
            return

        try:
            text = self.data_path.read_text(encoding="utf-8")
            if not text.strip() or text.strip() == "[]":
                return
            data = json.loads(text)
            if not isinstance(data, list):
                raise ValueError("channel store is not a JSON array")
            self._channels = [Channel.model_validate(item) for item in data]
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Channel store {self.data_path} is unreadable, starting empty: {e}")
            self._channels = []

        logger.debug(f"Loaded {len(self._channels)} channel(s) from {self.data_path}")

    def save(self) -> bool:
        """
        Write the full channel collection atomically.

        Returns:
            True if the file was written. Failures are logged and reported
            here rather than raised; in-memory state is not rolled back.
        """
        payload = [channel.model_dump_for_storage() for channel in self._channels]
        tmp_path: str | None = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=".channel_monitor.", suffix=".tmp", dir=self.data_dir
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.data_path)
            tmp_path = None
            return True
        except OSError as e:
            logger.error(f"Failed to save channel store {self.data_path}: {e}")
            return False
        finally:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def list_channels(self) -> list[Channel]:
        """Return a snapshot of the channel list (a new list, safe to iterate)."""
        return list(self._channels)

    def _index_of(self, channel_id: str) -> int:
        key = channel_id.casefold()
        for i, channel in enumerate(self._channels):
            if channel.channel_id.casefold() == key:
                return i
        return -1

    def get_channel(self, channel_id: str) -> Channel | None:
        if not channel_id:
            return None
        index = self._index_of(channel_id)
        return self._channels[index] if index >= 0 else None

    def has_channel(self, channel_id: str) -> bool:
        return bool(channel_id) and self._index_of(channel_id) >= 0

    def require_channel(self, channel_id: str) -> Channel:
        channel = self.get_channel(channel_id)
        if channel is None:
            raise ChannelNotFoundError(f"Channel not monitored: {channel_id}")
        return channel

    def add_channel(self, channel: Channel) -> None:
        """
        Add a channel to the repository.

        Raises:
            ChannelAlreadyMonitoredError: If the channel ID is already present
        """
        if self.has_channel(channel.channel_id):
            raise ChannelAlreadyMonitoredError(channel.channel_id, channel.channel_name)

        self._channels.append(channel)
        self.save()
        logger.info(f"Now monitoring {escape(channel.display_name)} ({channel.channel_id})")

    def remove_channel(self, channel_id: str) -> bool:
        """Stop monitoring a channel and delete its cached banner."""
        index = self._index_of(channel_id)
        if index < 0:
            return False

        channel = self._channels.pop(index)
        if channel.banner_path:
            banner = Path(channel.banner_path)
            try:
                banner.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not delete banner {banner}: {e}")

        self.save()
        logger.info(f"Stopped monitoring {escape(channel.display_name)} ({channel.channel_id})")
        return True

    def update_channel(self, channel: Channel) -> bool:
        """Overwrite the stored channel with the same ID and persist."""
        index = self._index_of(channel.channel_id)
        if index < 0:
            return False
        self._channels[index] = channel
        self.save()
        return True

    def reset_channel(self, channel_id: str, include_ignored: bool = False) -> int:
        """
        Remove tracked videos so the next scan rediscovers them.

        Ignored videos are kept unless ``include_ignored`` is set. The channel's
        ``last_checked`` is cleared.

        Returns:
            Number of videos removed
        """
        channel = self.require_channel(channel_id)
        before = len(channel.videos)

        if include_ignored:
            channel.videos = []
        else:
            channel.videos = [v for v in channel.videos if v.status == VideoStatus.IGNORED]

        channel.last_checked = None
        self.save()
        return before - len(channel.videos)

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------

    def get_new_video_count(self) -> int:
        return sum(channel.new_count for channel in self._channels)

    def get_all_new_videos(self) -> list[tuple[Channel, Video]]:
        """All New videos across channels, most recently uploaded first."""
        pairs = [
            (channel, video)
            for channel in self._channels
            for video in channel.videos
            if video.status == VideoStatus.NEW
        ]
        # Unknown dates sort last
        pairs.sort(key=lambda pair: pair[1].upload_date or date.min, reverse=True)
        return pairs

    def apply_video_action(self, channel_id: str, video_id: str, action: VideoAction) -> Video:
        """
        Apply a status transition to one video and persist immediately.

        Raises:
            ChannelNotFoundError: Unknown channel
            VideoNotFoundError: Unknown video in that channel
            InvalidStatusTransitionError: Action not allowed from the current status
        """
        channel = self.require_channel(channel_id)
        video = channel.find_video(video_id)
        if video is None:
            raise VideoNotFoundError(f"Video {video_id} not found in {channel.channel_id}")

        previous = video.status
        apply_action(video, action)
        self.save()
        logger.debug(f"{video.video_id}: {previous.value} -> {video.status.value} ({action.value})")
        return video

    def snooze_all(self, channel_id: str) -> int:
        """Snooze every New video in a channel. Returns the number snoozed."""
        channel = self.require_channel(channel_id)
        count = 0
        for video in channel.videos:
            if video.status == VideoStatus.NEW:
                apply_action(video, VideoAction.SNOOZE)
                count += 1
        if count:
            self.save()
        return count

    def mark_video_downloaded(self, video_id: str) -> Video | None:
        """
        Mark a video as Downloaded after the download pipeline finishes it.

        The first channel (in snapshot order) holding the ID wins. Videos that
        are already Downloaded are returned unchanged.
        """
        for channel in self.list_channels():
            video = channel.find_video(video_id)
            if video is None:
                continue
            if video.status != VideoStatus.DOWNLOADED:
                apply_action(video, VideoAction.DOWNLOAD)
                self.save()
            return video
        return None

    # ------------------------------------------------------------------
    # Banners
    # ------------------------------------------------------------------

    def banner_storage_path(self) -> Path:
        """Directory for cached channel banners."""
        banner_dir = self.data_dir / BANNER_DIR_NAME
        banner_dir.mkdir(parents=True, exist_ok=True)
        return banner_dir
