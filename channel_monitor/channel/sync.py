"""Channel sync module - scans one channel end to end and persists the result."""

from collections.abc import Callable
from typing import TYPE_CHECKING

from channel_monitor.core.logging_config import get_logger, log_channel_scan_event
from channel_monitor.database.history import DownloadHistoryLookup

from .feed_fetcher import DEFAULT_FEED_TIMEOUT, backfill_channel
from .listing import ChannelListing
from .merge import merge_listing
from .schemas import (
    BackfillResult,
    Channel,
    ChannelScanResult,
    ChannelScanStatus,
    ListingStatus,
    ScanKind,
)

if TYPE_CHECKING:
    from channel_monitor.database.repository import ChannelRepository

logger = get_logger("channel.sync")


def sync_channel(
    channel: Channel,
    listing: ChannelListing,
    repository: "ChannelRepository",
    history: DownloadHistoryLookup | None = None,
    *,
    scan_kind: ScanKind = "manual",
    force_backfill: bool = False,
    feed_timeout: float = DEFAULT_FEED_TIMEOUT,
    backfill: Callable[..., BackfillResult] = backfill_channel,
) -> ChannelScanResult:
    """
    Scan a single channel: listing, merge, date backfill, persist.

    The listing is consumed by the merge engine; when it raises
    ScanCancelledError the channel is left exactly as it was and the error
    propagates to the caller.

    Args:
        channel: Stored channel to update in place
        listing: Listing for the channel (not yet iterated)
        repository: Repository that owns ``channel``
        history: Download history used to pre-classify new videos
        scan_kind: "manual" or "idle" (logging only)
        force_backfill: Run the feed backfill even without new videos
        feed_timeout: Feed request timeout in seconds
        backfill: Backfill implementation

    Returns:
        ChannelScanResult
    """
    log_channel_scan_event(logger, channel.channel_id, channel.channel_name, "started", scan_kind=scan_kind)

    previous_check = channel.last_checked
    merge = merge_listing(channel, listing, history)

    if listing.status == ListingStatus.TOOL_UNAVAILABLE:
        # Nothing was checked, so don't claim otherwise
        channel.last_checked = previous_check
        error = f"yt-dlp not available ({listing.ytdlp_path})"
        log_channel_scan_event(
            logger, channel.channel_id, channel.channel_name, "failed", scan_kind=scan_kind, error=error
        )
        return ChannelScanResult(
            channel_id=channel.channel_id,
            channel_name=channel.channel_name,
            status=ChannelScanStatus.TOOL_UNAVAILABLE,
            listing_status=listing.status,
            error=error,
        )

    backfill_result = backfill(
        channel,
        new_videos=merge.new_count,
        force=force_backfill,
        timeout=feed_timeout,
    )

    if not repository.update_channel(channel):
        error = "Channel removed during scan; results discarded"
        logger.warning(f"Channel {channel.channel_id} was removed during the scan; results discarded")
        log_channel_scan_event(
            logger, channel.channel_id, channel.channel_name, "failed", scan_kind=scan_kind, error=error
        )
        return ChannelScanResult(
            channel_id=channel.channel_id,
            channel_name=channel.channel_name,
            status=ChannelScanStatus.REMOVED,
            listing_status=listing.status,
            backfill=backfill_result,
            error=error,
        )

    status = ChannelScanStatus.OK
    error = None
    if listing.status == ListingStatus.TOOL_FAILED:
        status = ChannelScanStatus.FAILED
        error = f"yt-dlp exited with {listing.returncode}"
        if listing.stderr_tail:
            error = f"{error}: {listing.stderr_tail[-1]}"

    result = ChannelScanResult(
        channel_id=channel.channel_id,
        channel_name=channel.channel_name,
        status=status,
        listing_status=listing.status,
        videos_fetched=merge.fetched_count,
        videos_new=merge.new_count,
        videos_downloaded=merge.downloaded_count,
        malformed_lines=listing.malformed,
        backfill=backfill_result,
        error=error,
    )

    log_channel_scan_event(
        logger,
        channel.channel_id,
        channel.channel_name,
        "failed" if error else "completed",
        scan_kind=scan_kind,
        videos_fetched=result.videos_fetched,
        videos_new=result.videos_new,
        error=error,
    )
    return result
