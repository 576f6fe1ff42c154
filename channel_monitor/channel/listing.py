"""Channel listing - streams a channel's uploads from yt-dlp --flat-playlist."""

import json
import subprocess
import threading
from collections import deque
from collections.abc import Callable, Iterator
from typing import Any

from channel_monitor.core.exceptions import ScanCancelledError
from channel_monitor.core.logging_config import get_logger

from .normalizer import channel_videos_url
from .schemas import ListingEntry, ListingStatus

logger = get_logger("channel.listing")

STDERR_TAIL_LINES = 20


def parse_listing_line(line: str) -> ListingEntry | None:
    """
    Parse one ``--dump-json --flat-playlist`` output line.

    Returns:
        ListingEntry, or None for blank, malformed or ID-less lines
    """
    line = line.strip()
    if not line:
        return None

    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None

    if not isinstance(data, dict):
        return None

    video_id = data.get("id")
    if not isinstance(video_id, str) or not video_id:
        return None

    title = data.get("title")

    thumbnail = data.get("thumbnail")
    if not isinstance(thumbnail, str) or not thumbnail:
        thumbnail = _last_thumbnail_url(data.get("thumbnails"))

    duration = data.get("duration")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        duration = None

    return ListingEntry(
        video_id=video_id,
        title=title if isinstance(title, str) else "",
        thumbnail_url=thumbnail or "",
        duration_seconds=float(duration) if duration is not None else None,
    )


def _last_thumbnail_url(thumbnails: Any) -> str:
    """Highest quality thumbnail is last in yt-dlp's list."""
    if isinstance(thumbnails, list) and thumbnails:
        last = thumbnails[-1]
        if isinstance(last, dict) and isinstance(last.get("url"), str):
            return last["url"]
    return ""


class ChannelListing:
    """
    One yt-dlp flat listing of a channel's uploads, consumed as an iterator.

    Entries are yielded in yt-dlp's order (newest first). stderr is drained on a
    background thread so a chatty yt-dlp can never block on a full pipe.

    Soft failures don't raise: a missing binary yields nothing and sets
    ``status`` to TOOL_UNAVAILABLE; a non-zero exit sets TOOL_FAILED after the
    output has been consumed. Cancellation raises ScanCancelledError.
    """

    def __init__(
        self,
        channel_url: str,
        max_items: int | None = None,
        *,
        ytdlp_path: str = "yt-dlp",
        cookie_args: list[str] | None = None,
        cancel_event: threading.Event | None = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.channel_url = channel_url
        self.max_items = max_items
        self.ytdlp_path = ytdlp_path
        self.cookie_args = list(cookie_args or [])
        self.cancel_event = cancel_event
        self._popen = popen

        self.status = ListingStatus.OK
        self.lines_read = 0
        self.malformed = 0
        self.returncode: int | None = None
        self.stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

        self._process: subprocess.Popen | None = None
        self._killed = False
        self._lock = threading.Lock()

    def build_command(self) -> list[str]:
        cmd = [self.ytdlp_path]
        cmd.extend(self.cookie_args)
        cmd.extend(["--dump-json", "--flat-playlist"])
        if self.max_items is not None:
            cmd.extend(["--playlist-end", str(self.max_items)])
        cmd.extend(["--extractor-args", "youtube:approximate_date"])
        cmd.append(channel_videos_url(self.channel_url))
        return cmd

    def kill(self) -> None:
        """Kill the running yt-dlp process. Safe to call from another thread."""
        with self._lock:
            self._killed = True
            process = self._process
        if process is not None and process.poll() is None:
            try:
                process.kill()
            except OSError as e:
                logger.debug(f"Kill failed for yt-dlp: {e}")

    def _is_cancelled(self) -> bool:
        return self._killed or (self.cancel_event is not None and self.cancel_event.is_set())

    def _drain_stderr(self, stream) -> None:
        try:
            for line in stream:
                line = line.rstrip()
                if line:
                    self.stderr_tail.append(line)
        except (OSError, ValueError):
            # Stream closed underneath us after kill
            pass

    def __iter__(self) -> Iterator[ListingEntry]:
        cmd = self.build_command()
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = self._popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except (FileNotFoundError, PermissionError) as e:
            self.status = ListingStatus.TOOL_UNAVAILABLE
            logger.warning(f"yt-dlp not available ({self.ytdlp_path}): {e}")
            return

        with self._lock:
            self._process = process
            killed_early = self._killed
        if killed_early:
            self.kill()

        drain = threading.Thread(
            target=self._drain_stderr, args=(process.stderr,), name="ytdlp-stderr", daemon=True
        )
        drain.start()

        try:
            for line in process.stdout:
                if self._is_cancelled():
                    self._cancel()

                self.lines_read += 1
                entry = parse_listing_line(line)
                if entry is None:
                    if line.strip():
                        self.malformed += 1
                    continue
                yield entry

            process.wait()
            drain.join(timeout=5)

            if self._is_cancelled():
                self._cancel()

            self.returncode = process.returncode
            if process.returncode != 0:
                self.status = ListingStatus.TOOL_FAILED
                tail = self.stderr_tail[-1] if self.stderr_tail else "no stderr output"
                logger.warning(f"yt-dlp exited with {process.returncode} for {self.channel_url}: {tail}")

            if self.malformed:
                logger.debug(f"Skipped {self.malformed} malformed listing line(s)")
        finally:
            if process.poll() is None:
                process.kill()
                process.wait()
            drain.join(timeout=1)
            for stream in (process.stdout, process.stderr):
                if stream is not None:
                    stream.close()

    def _cancel(self) -> None:
        self.status = ListingStatus.CANCELLED
        self.kill()
        raise ScanCancelledError(f"Listing cancelled for {self.channel_url}")
