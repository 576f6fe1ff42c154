"""Channel tracking module for YouTube channels."""

from .feed_fetcher import backfill_channel, fetch_feed_dates, parse_feed_dates
from .listing import ChannelListing, parse_listing_line
from .merge import merge_listing
from .normalizer import (
    channel_videos_url,
    extract_channel_id,
    is_valid_channel_url,
    normalize_channel_url,
)
from .resolver import download_channel_banner, get_channel_info
from .schemas import (
    BackfillResult,
    BackfillStatus,
    Channel,
    ChannelScanResult,
    ChannelScanStatus,
    ListingEntry,
    ListingStatus,
    MergeResult,
    ScanReport,
    Video,
    VideoAction,
    VideoStatus,
)
from .status import apply_action, available_actions, can_apply, filter_videos
from .sync import sync_channel

__all__ = [
    # Normalizer
    "normalize_channel_url",
    "is_valid_channel_url",
    "channel_videos_url",
    "extract_channel_id",
    # Resolver
    "get_channel_info",
    "download_channel_banner",
    # Listing
    "ChannelListing",
    "parse_listing_line",
    # Merge
    "merge_listing",
    # Feed fetcher
    "backfill_channel",
    "fetch_feed_dates",
    "parse_feed_dates",
    # Status
    "apply_action",
    "can_apply",
    "available_actions",
    "filter_videos",
    # Schemas
    "Channel",
    "Video",
    "VideoStatus",
    "VideoAction",
    "ListingEntry",
    "ListingStatus",
    "MergeResult",
    "BackfillResult",
    "BackfillStatus",
    "ChannelScanResult",
    "ChannelScanStatus",
    "ScanReport",
    # Sync
    "sync_channel",
]
