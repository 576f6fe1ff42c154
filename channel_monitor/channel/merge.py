"""Merge engine - reconciles a fetched listing with a channel's stored videos."""

from collections.abc import Iterable
from datetime import datetime

from rich.markup import escape

from channel_monitor.core.logging_config import get_logger
from channel_monitor.database.history import DownloadHistoryLookup

from .schemas import Channel, ListingEntry, MergeResult, Video
from .status import initial_status

logger = get_logger("channel.merge")


def merge_listing(
    channel: Channel,
    entries: Iterable[ListingEntry],
    history: DownloadHistoryLookup | None = None,
    now: datetime | None = None,
) -> MergeResult:
    """
    Merge fetched listing entries into ``channel`` in place.

    The whole listing is consumed even after a known ID turns up: the caller
    bounds cost through the listing cap, and new uploads can appear after
    known ones near the boundary. New videos keep their fetched order and are
    placed ahead of the existing ones. Videos found in the download history
    start as Downloaded, everything else as New.

    If ``entries`` raises (e.g. ScanCancelledError) the channel is left
    untouched.

    Args:
        channel: Channel to update
        entries: Listing entries, newest first
        history: Download history used to pre-classify new videos
        now: Timestamp for ``last_checked`` (defaults to now)

    Returns:
        MergeResult describing what was added
    """
    known_ids = {video.video_id.casefold() for video in channel.videos}
    result = MergeResult()

    for entry in entries:
        result.fetched_count += 1
        key = entry.video_id.casefold()

        if key in known_ids:
            result.known_count += 1
            if not result.saw_known:
                result.saw_known = True
                logger.debug(
                    f"First known video for {escape(channel.display_name)} "
                    f"at position {result.fetched_count}"
                )
            continue

        in_history = history is not None and history.has_video_id(entry.video_id)
        result.new_videos.append(
            Video(
                video_id=entry.video_id,
                title=entry.title,
                thumbnail_url=entry.thumbnail_url,
                duration_seconds=entry.duration_seconds,
                upload_date=None,
                status=initial_status(in_history),
            )
        )
        known_ids.add(key)

    if result.new_videos:
        channel.videos[0:0] = result.new_videos
        logger.info(f"Found {result.new_count} new video(s) from {escape(channel.display_name)}")

    channel.last_checked = now or datetime.now()
    return result
