"""Read-only access to the download history written by the download pipeline."""

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from channel_monitor.core.logging_config import get_logger

logger = get_logger("database.history")

SINGLES_FILE_NAME = "history_singles.json"
PLAYLISTS_FILE_NAME = "history_playlists.json"

# .NET writes up to 7 fractional digits; datetime accepts at most 6
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class DownloadHistoryLookup(Protocol):
    """What the merge engine needs from the download history."""

    def has_video_id(self, video_id: str) -> bool: ...


class _HistoryModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class PlaylistTrack(_HistoryModel):
    video_id: str = ""
    title: str = ""
    download_date: str | None = None


class DownloadRecord(_HistoryModel):
    video_id: str = ""
    title: str = ""
    download_date: str | None = None
    is_playlist: bool = False
    playlist_tracks: list[PlaylistTrack] = Field(default_factory=list)


def parse_history_date(value: str | None) -> datetime | None:
    """Parse a history timestamp, tolerating 7-digit fractions and a 'Z' suffix."""
    if not value:
        return None
    text = _FRACTION_RE.sub(r"\1", value.strip()).replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.year <= 1:
        return None
    return parsed


class DownloadHistory:
    """
    Read-only view over ``history_singles.json`` and ``history_playlists.json``.

    Unreadable or corrupt files are treated as empty. Video ID matching is
    case-insensitive.
    """

    def __init__(self, history_dir: Path | str):
        self.history_dir = Path(history_dir).expanduser()
        self.singles_path = self.history_dir / SINGLES_FILE_NAME
        self.playlists_path = self.history_dir / PLAYLISTS_FILE_NAME
        self._dates: dict[str, datetime | None] = {}
        self.load()

    def load(self) -> None:
        """(Re)load both history files."""
        dates: dict[str, datetime | None] = {}

        for record in self._load_file(self.singles_path):
            if record.video_id:
                dates.setdefault(record.video_id.casefold(), parse_history_date(record.download_date))

        for playlist in self._load_file(self.playlists_path):
            playlist_date = parse_history_date(playlist.download_date)
            for track in playlist.playlist_tracks:
                if track.video_id:
                    track_date = parse_history_date(track.download_date) or playlist_date
                    dates.setdefault(track.video_id.casefold(), track_date)

        self._dates = dates
        logger.debug(f"Loaded download history: {len(dates)} video IDs")

    def _load_file(self, path: Path) -> list[DownloadRecord]:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8-sig") or "[]")
            if not isinstance(data, list):
                raise ValueError("history file is not a JSON array")
            return [DownloadRecord.model_validate(item) for item in data if isinstance(item, dict)]
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable download history {path}: {e}")
            return []

    def has_video_id(self, video_id: str) -> bool:
        """Check if a video ID exists in any history record."""
        if not video_id:
            return False
        return video_id.casefold() in self._dates

    def find_download_date(self, video_id: str) -> datetime | None:
        """When the video was downloaded, if it is in the history and the date is known."""
        if not video_id:
            return None
        return self._dates.get(video_id.casefold())

    def __len__(self) -> int:
        return len(self._dates)


class EmptyHistory:
    """History stand-in for when no download history is configured."""

    def has_video_id(self, video_id: str) -> bool:
        return False
