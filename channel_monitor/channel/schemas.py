"""Pydantic schemas for channel monitoring."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class VideoStatus(str, Enum):
    """Review status of a monitored video."""

    NEW = "New"
    SNOOZED = "Snoozed"
    WATCHED = "Watched"
    DOWNLOADED = "Downloaded"
    IGNORED = "Ignored"


class VideoAction(str, Enum):
    """User or system action that may change a video's status."""

    SNOOZE = "snooze"
    UNSNOOZE = "unsnooze"
    OPEN = "open"
    IGNORE = "ignore"
    WAKE = "wake"
    DOWNLOAD = "download"


class StoredModel(BaseModel):
    """Base for models persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def model_dump_for_storage(self) -> dict[str, Any]:
        """Convert to a JSON-safe dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class Video(StoredModel):
    """A video belonging to a monitored channel."""

    video_id: str
    title: str = ""
    thumbnail_url: str = ""
    upload_date: date | None = None
    duration_seconds: float | None = None
    status: VideoStatus = VideoStatus.NEW

    @computed_field(alias="isNew")  # type: ignore[prop-decorator]
    @property
    def is_new(self) -> bool:
        """Mirror of ``status == New``."""
        return self.status == VideoStatus.NEW

    @property
    def watch_url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.video_id}"


class Channel(StoredModel):
    """A monitored YouTube channel and its known videos (newest first)."""

    channel_id: str
    channel_name: str = ""
    channel_url: str = ""
    banner_path: str = ""
    date_added: datetime = Field(default_factory=datetime.now)
    last_checked: datetime | None = None
    monitor_from_date: datetime | None = None
    banner_last_updated: datetime | None = None
    videos: list[Video] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.channel_name or self.channel_id

    @property
    def new_count(self) -> int:
        return sum(1 for v in self.videos if v.status == VideoStatus.NEW)

    def count_by_status(self) -> dict[VideoStatus, int]:
        """Count videos per status (every status present, zero if unused)."""
        counts = {status: 0 for status in VideoStatus}
        for video in self.videos:
            counts[video.status] += 1
        return counts

    def find_video(self, video_id: str) -> Video | None:
        """Find a video by ID (case-insensitive)."""
        key = video_id.casefold()
        for video in self.videos:
            if video.video_id.casefold() == key:
                return video
        return None


class ListingEntry(BaseModel):
    """Lightweight record emitted by the flat channel listing."""

    video_id: str
    title: str = ""
    thumbnail_url: str = ""
    duration_seconds: float | None = None


class ListingStatus(str, Enum):
    """Outcome of one listing invocation."""

    OK = "ok"
    TOOL_UNAVAILABLE = "tool_unavailable"
    TOOL_FAILED = "tool_failed"
    CANCELLED = "cancelled"


class BackfillStatus(str, Enum):
    """Outcome of the feed date backfill for one channel."""

    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


class ChannelScanStatus(str, Enum):
    """Outcome of scanning one channel."""

    OK = "ok"
    TOOL_UNAVAILABLE = "tool_unavailable"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REMOVED = "removed"


class MergeResult(BaseModel):
    """Result of merging a fetched listing into a channel."""

    new_videos: list[Video] = Field(default_factory=list)
    fetched_count: int = 0
    known_count: int = 0
    saw_known: bool = False

    @property
    def new_count(self) -> int:
        return len(self.new_videos)

    @property
    def downloaded_count(self) -> int:
        return sum(1 for v in self.new_videos if v.status == VideoStatus.DOWNLOADED)


class BackfillResult(BaseModel):
    """Result of the feed date backfill."""

    status: BackfillStatus
    entries_seen: int = 0
    dates_updated: int = 0
    error: str | None = None


class ChannelScanResult(BaseModel):
    """Result of scanning a single channel."""

    channel_id: str
    channel_name: str
    status: ChannelScanStatus
    listing_status: ListingStatus | None = None
    videos_fetched: int = 0
    videos_new: int = 0
    videos_downloaded: int = 0
    malformed_lines: int = 0
    backfill: BackfillResult | None = None
    error: str | None = None
    completed_at: datetime = Field(default_factory=datetime.now)


ScanKind = Literal["manual", "idle"]


class ScanReport(BaseModel):
    """Aggregate result of one scan run over one or more channels."""

    kind: ScanKind
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None
    results: list[ChannelScanResult] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def videos_new(self) -> int:
        return sum(r.videos_new for r in self.results)

    @property
    def failed(self) -> list[ChannelScanResult]:
        return [
            r
            for r in self.results
            if r.status in (ChannelScanStatus.FAILED, ChannelScanStatus.TOOL_UNAVAILABLE)
        ]
