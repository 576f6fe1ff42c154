"""Channel resolver - turns a channel URL into a Channel and caches its banner."""

import json
import shutil
import subprocess
import tempfile
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from rich.markup import escape

from channel_monitor.core.exceptions import ChannelInfoError, InvalidChannelUrlError
from channel_monitor.core.http_session import IMAGE_SESSION, get
from channel_monitor.core.logging_config import get_logger

from .normalizer import extract_channel_id, is_valid_channel_url, normalize_channel_url
from .schemas import Channel

logger = get_logger("channel.resolver")

MONITOR_LOOKBACK_DAYS = 30
DEFAULT_BANNER_TTL_DAYS = 7

# Metadata fields that carry the channel avatar, best first
AVATAR_FIELDS = ("channel_thumbnail_url", "uploader_thumbnail", "channel_thumbnail")

Runner = Callable[..., subprocess.CompletedProcess]


def parse_channel_info(data: dict[str, Any], channel_url: str, now: datetime | None = None) -> Channel:
    """
    Build a Channel from one ``--dump-json`` record.

    Raises:
        ChannelInfoError: If no channel ID can be determined
    """
    now = now or datetime.now()

    channel_id = data.get("channel_id") or ""
    channel_name = data.get("channel") or data.get("uploader") or ""
    resolved_url = data.get("channel_url") or channel_url

    if not channel_id:
        # uploader_id may be an @handle; a /channel/ URL beats it
        channel_id = extract_channel_id(resolved_url) or data.get("uploader_id") or ""

    if not channel_id:
        raise ChannelInfoError(f"Could not determine channel ID for {channel_url}")

    return Channel(
        channel_id=channel_id,
        channel_name=channel_name,
        channel_url=normalize_channel_url(resolved_url),
        date_added=now,
        monitor_from_date=now - timedelta(days=MONITOR_LOOKBACK_DAYS),
    )


def get_channel_info(
    channel_url: str,
    *,
    ytdlp_path: str = "yt-dlp",
    cookie_args: list[str] | None = None,
    timeout: int = 60,
    runner: Runner = subprocess.run,
) -> Channel:
    """
    Resolve a channel URL to its identity using yt-dlp.

    Args:
        channel_url: User-entered channel reference (normalized here)
        ytdlp_path: yt-dlp executable
        cookie_args: Extra ``--cookies`` arguments
        timeout: Seconds before giving up on yt-dlp
        runner: subprocess.run compatible callable

    Returns:
        A new Channel (not yet added to any repository)

    Raises:
        InvalidChannelUrlError: If the URL is not a supported channel reference
        ChannelInfoError: If yt-dlp is missing, fails, or returns no channel ID
    """
    url = normalize_channel_url(channel_url)
    if not is_valid_channel_url(url):
        raise InvalidChannelUrlError(f"Not a YouTube channel URL: {channel_url}")

    cmd = [ytdlp_path, *(cookie_args or []), "--dump-json", "--playlist-items", "1", url]
    logger.debug(f"Resolving channel: {url}")

    try:
        result = runner(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise ChannelInfoError(f"yt-dlp is not available ({ytdlp_path}): {e}") from e
    except subprocess.TimeoutExpired as e:
        raise ChannelInfoError(f"yt-dlp timed out after {timeout}s resolving {url}") from e

    output = (result.stdout or "").strip()
    if not output:
        stderr = (result.stderr or "").strip()
        raise ChannelInfoError(f"No channel info for {url}: {stderr or 'yt-dlp produced no output'}")

    # --dump-json prints one object per line; the first is enough
    first_line = output.splitlines()[0]
    try:
        data = json.loads(first_line)
    except json.JSONDecodeError as e:
        raise ChannelInfoError(f"Invalid yt-dlp output for {url}: {e}") from e
    if not isinstance(data, dict):
        raise ChannelInfoError(f"Unexpected yt-dlp output for {url}")

    channel = parse_channel_info(data, url)
    logger.info(f"Resolved {escape(channel.display_name)} ({channel.channel_id})")
    return channel


def banner_is_fresh(channel: Channel, ttl_days: int = DEFAULT_BANNER_TTL_DAYS, now: datetime | None = None) -> bool:
    """Whether the cached banner exists and is younger than the TTL."""
    if not channel.banner_path or not Path(channel.banner_path).exists():
        return False
    if channel.banner_last_updated is None:
        return False
    now = now or datetime.now()
    return now - channel.banner_last_updated < timedelta(days=ttl_days)


def find_avatar_url(data: dict[str, Any]) -> str | None:
    """Pick the channel avatar URL out of a full video metadata record."""
    for field in AVATAR_FIELDS:
        value = data.get(field)
        if isinstance(value, str) and value:
            return value

    thumbnails = data.get("thumbnails")
    if isinstance(thumbnails, list):
        for thumb in thumbnails:
            url = thumb.get("url") if isinstance(thumb, dict) else None
            if isinstance(url, str) and ("yt3.ggpht.com" in url or "/a/" in url):
                return url
    return None


def _image_extension(url: str, content: bytes) -> str:
    if ".png" in url or content[:2] == b"\x89P":
        return ".png"
    if ".webp" in url or content[8:12] == b"WEBP":
        return ".webp"
    return ".jpg"


def _replace_banner(channel: Channel, target: Path) -> None:
    """Drop a previous banner stored under a different name (e.g. other extension)."""
    if channel.banner_path and Path(channel.banner_path) != target:
        try:
            Path(channel.banner_path).unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not delete old banner {channel.banner_path}: {e}")


def _banner_from_thumbnail(
    channel: Channel, banner_dir: Path, ytdlp_path: str, cookie_args: list[str], timeout: int, runner: Runner
) -> Path | None:
    with tempfile.TemporaryDirectory(prefix="channel_banner_") as tmp:
        cmd = [
            ytdlp_path,
            *cookie_args,
            "--write-thumbnail",
            "--skip-download",
            "--playlist-items",
            "0",
            "--convert-thumbnails",
            "jpg",
            "-o",
            str(Path(tmp) / "avatar"),
            channel.channel_url,
        ]
        runner(cmd, capture_output=True, text=True, encoding="utf-8", errors="replace", timeout=timeout)

        downloaded = sorted(Path(tmp).glob("avatar*.*"))
        if not downloaded:
            return None

        target = banner_dir / f"{channel.channel_id}{downloaded[0].suffix}"
        _replace_banner(channel, target)
        shutil.copyfile(downloaded[0], target)
        return target


def _banner_from_metadata(
    channel: Channel, banner_dir: Path, ytdlp_path: str, cookie_args: list[str], timeout: int, runner: Runner
) -> Path | None:
    cmd = [ytdlp_path, *cookie_args, "--dump-json", "--playlist-items", "1", f"{channel.channel_url}/videos"]
    result = runner(cmd, capture_output=True, text=True, encoding="utf-8", errors="replace", timeout=timeout)

    output = (result.stdout or "").strip()
    if not output:
        return None
    data = json.loads(output.splitlines()[0])
    avatar_url = find_avatar_url(data) if isinstance(data, dict) else None
    if not avatar_url:
        return None

    logger.debug(f"Downloading banner from {avatar_url}")
    response = get(avatar_url, session_name=IMAGE_SESSION, timeout=timeout)
    response.raise_for_status()

    target = banner_dir / f"{channel.channel_id}{_image_extension(avatar_url, response.content)}"
    _replace_banner(channel, target)
    target.write_bytes(response.content)
    return target


def download_channel_banner(
    channel: Channel,
    banner_dir: Path,
    *,
    force: bool = False,
    ttl_days: int = DEFAULT_BANNER_TTL_DAYS,
    ytdlp_path: str = "yt-dlp",
    cookie_args: list[str] | None = None,
    timeout: int = 60,
    runner: Runner = subprocess.run,
) -> bool:
    """
    Fetch the channel avatar into ``banner_dir`` and record it on the channel.

    A cached banner younger than ``ttl_days`` is kept unless ``force`` is set.
    The banner is optional: every failure is logged and reported as False.

    Returns:
        True if a new banner was stored
    """
    if not force and banner_is_fresh(channel, ttl_days):
        logger.debug(f"Banner for {escape(channel.display_name)} is cached and fresh")
        return False

    args = list(cookie_args or [])
    for method in (_banner_from_thumbnail, _banner_from_metadata):
        try:
            path = method(channel, banner_dir, ytdlp_path, args, timeout, runner)
        except Exception as e:
            logger.debug(f"Banner lookup ({method.__name__}) failed for {escape(channel.display_name)}: {e}")
            continue
        if path is not None:
            channel.banner_path = str(path)
            channel.banner_last_updated = datetime.now()
            logger.debug(f"Banner saved to {path}")
            return True

    logger.info(f"No banner found for {escape(channel.display_name)}")
    return False
