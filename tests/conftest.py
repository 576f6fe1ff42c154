"""Pytest fixtures for the channel monitor tests.

This module provides:
- Isolated settings and repository on a temporary data directory
- Channel/video factories
- A fake yt-dlp process for the listing adapter
- A controllable clock for the scheduler
"""

import io
import json
from collections.abc import Iterable
from datetime import datetime

import pytest

from channel_monitor.channel.schemas import Channel, Video, VideoStatus
from channel_monitor.core.config import Settings
from channel_monitor.database.repository import ChannelRepository


# =============================================================================
# Helpers
# =============================================================================


def listing_line(video_id: str, title: str | None = None, **extra) -> str:
    """One ``--dump-json --flat-playlist`` output line."""
    data = {"id": video_id, "title": title if title is not None else f"Video {video_id}"}
    data.update(extra)
    return json.dumps(data)


def make_video(video_id: str, status: VideoStatus = VideoStatus.NEW, **kwargs) -> Video:
    kwargs.setdefault("title", f"Video {video_id}")
    return Video(video_id=video_id, status=status, **kwargs)


def make_channel(channel_id: str = "UC_test", videos: Iterable[Video] = (), **kwargs) -> Channel:
    kwargs.setdefault("channel_name", f"Channel {channel_id}")
    kwargs.setdefault("channel_url", f"https://www.youtube.com/channel/{channel_id}")
    return Channel(channel_id=channel_id, videos=list(videos), **kwargs)


class FakeProcess:
    """Stand-in for subprocess.Popen with canned stdout/stderr."""

    def __init__(self, lines: Iterable[str] = (), returncode: int = 0, stderr_lines: Iterable[str] = ()):
        self.stdout = io.StringIO("".join(f"{line}\n" for line in lines))
        self.stderr = io.StringIO("".join(f"{line}\n" for line in stderr_lines))
        self._exit_code = returncode
        self.returncode: int | None = None
        self.killed = False

    def poll(self) -> int | None:
        return self.returncode

    def wait(self, timeout: float | None = None) -> int:
        if self.returncode is None:
            self.returncode = self._exit_code
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        if self.returncode is None:
            self.returncode = -9


class FakePopen:
    """
    Callable replacing subprocess.Popen.

    ``responses`` maps a substring of the requested URL to a FakeProcess, a
    list of output lines, or an exception to raise at spawn time.
    """

    def __init__(self, responses: dict | None = None, default=None):
        self.responses = responses or {}
        self.default = default if default is not None else []
        self.calls: list[list[str]] = []
        self.processes: list[FakeProcess] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        response = self.default
        for key, value in self.responses.items():
            if key in cmd[-1]:
                response = value
                break

        if isinstance(response, BaseException):
            raise response
        process = response if isinstance(response, FakeProcess) else FakeProcess(response)
        self.processes.append(process)
        return process


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment's .env file.

    Returns:
        Settings pointing at a temporary data directory
    """
    return Settings(_env_file=None, data_dir=str(tmp_path / "data"))


@pytest.fixture
def repository(settings) -> ChannelRepository:
    """Empty repository on a temporary directory."""
    return ChannelRepository(settings.data_path)


@pytest.fixture
def channel() -> Channel:
    """A channel with two known videos, newest first."""
    return make_channel(
        "UC_known",
        videos=[make_video("v1"), make_video("v2", VideoStatus.SNOOZED)],
        last_checked=datetime(2024, 1, 1, 12, 0),
    )


@pytest.fixture
def fake_popen() -> FakePopen:
    return FakePopen()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
