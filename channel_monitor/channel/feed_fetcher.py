"""Feed fetcher - backfills upload dates from the channel's Atom feed."""

import xml.etree.ElementTree as ET
from datetime import date, datetime

from rich.markup import escape

from channel_monitor.core.http_session import FEED_SESSION, get
from channel_monitor.core.logging_config import get_logger

from .schemas import BackfillResult, BackfillStatus, Channel

logger = get_logger("channel.feed")

FEED_URL = "https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}"
DEFAULT_FEED_TIMEOUT = 15.0

# YouTube uses Atom namespace
NS = {
    "atom": "http://www.w3.org/2005/Atom",
    "yt": "http://www.youtube.com/xml/schemas/2015",
}


def feed_url(channel_id: str) -> str:
    return FEED_URL.format(channel_id=channel_id)


def parse_published(value: str | None) -> date | None:
    """Parse an Atom ``published`` timestamp to a date (None if unparsable)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_feed_dates(content: bytes | str) -> dict[str, date]:
    """
    Extract video ID -> publish date from a channel feed document.

    Entries without an ID or with an unparsable date are skipped.

    Raises:
        ET.ParseError: If the document is not XML
    """
    root = ET.fromstring(content)
    dates: dict[str, date] = {}

    for entry in root.iter(f"{{{NS['atom']}}}entry"):
        video_id_elem = entry.find("yt:videoId", NS)
        video_id = video_id_elem.text.strip() if video_id_elem is not None and video_id_elem.text else ""
        if not video_id:
            continue

        published_elem = entry.find("atom:published", NS)
        published = parse_published(published_elem.text if published_elem is not None else None)
        if published is None:
            logger.debug(f"Feed entry {video_id} has no usable published date")
            continue

        dates.setdefault(video_id.casefold(), published)

    return dates


def fetch_feed_dates(channel_id: str, timeout: float = DEFAULT_FEED_TIMEOUT) -> dict[str, date]:
    """
    Fetch the channel feed (~15 most recent uploads) and return publish dates.

    The feed session never retries; the next scan is the retry.

    Raises:
        requests.RequestException: On network failure or HTTP error status
        ET.ParseError: If the response is not XML
    """
    url = feed_url(channel_id)
    logger.debug(f"Fetching feed: {url}")

    response = get(url, session_name=FEED_SESSION, timeout=timeout)
    response.raise_for_status()
    return parse_feed_dates(response.content)


def apply_feed_dates(channel: Channel, dates: dict[str, date]) -> int:
    """
    Set ``upload_date`` on videos that don't have one yet.

    Known dates are never overwritten; IDs not in the channel are ignored.

    Returns:
        Number of videos updated
    """
    updated = 0
    for video in channel.videos:
        if video.upload_date is not None:
            continue
        published = dates.get(video.video_id.casefold())
        if published is not None:
            video.upload_date = published
            updated += 1
    return updated


def backfill_channel(
    channel: Channel,
    *,
    new_videos: int = 0,
    force: bool = False,
    timeout: float = DEFAULT_FEED_TIMEOUT,
    fetcher=fetch_feed_dates,
) -> BackfillResult:
    """
    Best-effort upload date backfill for one channel.

    Runs when the merge added videos, or always when ``force`` is set (manual
    scans). Any fetch or parse error is logged and reported as FAILED; it is
    never raised.

    Args:
        channel: Channel to update in place
        new_videos: Number of videos the merge just added
        force: Backfill even if nothing new was merged
        timeout: Feed request timeout in seconds
        fetcher: Callable(channel_id, timeout) -> {video_id: date}

    Returns:
        BackfillResult
    """
    if not channel.channel_id:
        logger.debug("No channel ID for feed lookup")
        return BackfillResult(status=BackfillStatus.SKIPPED)

    if new_videos <= 0 and not force:
        return BackfillResult(status=BackfillStatus.SKIPPED)

    try:
        dates = fetcher(channel.channel_id, timeout)
    except Exception as e:
        logger.warning(f"Feed backfill failed for {escape(channel.display_name)}: {escape(str(e))}")
        return BackfillResult(status=BackfillStatus.FAILED, error=str(e))

    updated = apply_feed_dates(channel, dates)
    logger.debug(f"Updated {updated} video date(s) from feed for {escape(channel.display_name)}")
    return BackfillResult(status=BackfillStatus.OK, entries_seen=len(dates), dates_updated=updated)
