"""Tests for single-channel sync."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from channel_monitor.channel.listing import ChannelListing
from channel_monitor.channel.schemas import (
    BackfillResult,
    BackfillStatus,
    ChannelScanStatus,
    ListingStatus,
)
from channel_monitor.channel.sync import sync_channel
from channel_monitor.core.exceptions import ScanCancelledError
from channel_monitor.database.repository import ChannelRepository

from conftest import FakePopen, FakeProcess, listing_line


@pytest.fixture
def backfill():
    return MagicMock(return_value=BackfillResult(status=BackfillStatus.OK, dates_updated=1))


def listing_for(channel, popen, **kwargs) -> ChannelListing:
    return ChannelListing(channel.channel_url, popen=popen, **kwargs)


class TestSyncChannel:
    """Test sync_channel."""

    def test_merges_backfills_and_persists(self, repository, channel, backfill):
        repository.add_channel(channel)
        popen = FakePopen(default=[listing_line("v0"), listing_line("v1")])

        result = sync_channel(channel, listing_for(channel, popen), repository, backfill=backfill)

        assert result.status == ChannelScanStatus.OK
        assert result.videos_new == 1
        assert result.videos_fetched == 2
        assert result.backfill.status == BackfillStatus.OK
        backfill.assert_called_once_with(channel, new_videos=1, force=False, timeout=15.0)

        reloaded = ChannelRepository(repository.data_dir).get_channel(channel.channel_id)
        assert [v.video_id for v in reloaded.videos] == ["v0", "v1", "v2"]

    def test_force_backfill(self, repository, channel, backfill):
        repository.add_channel(channel)
        sync_channel(channel, listing_for(channel, FakePopen()), repository, force_backfill=True, backfill=backfill)
        assert backfill.call_args.kwargs["force"] is True

    def test_tool_unavailable(self, repository, channel, backfill):
        repository.add_channel(channel)
        before = channel.last_checked
        popen = FakePopen(default=FileNotFoundError("yt-dlp"))

        result = sync_channel(channel, listing_for(channel, popen), repository, backfill=backfill)

        assert result.status == ChannelScanStatus.TOOL_UNAVAILABLE
        assert result.listing_status == ListingStatus.TOOL_UNAVAILABLE
        assert channel.last_checked == before
        backfill.assert_not_called()

    def test_tool_failed_keeps_partial_results(self, repository, channel, backfill):
        repository.add_channel(channel)
        process = FakeProcess([listing_line("v0")], returncode=2, stderr_lines=["ERROR: rate limited"])

        result = sync_channel(channel, listing_for(channel, FakePopen(default=process)), repository, backfill=backfill)

        assert result.status == ChannelScanStatus.FAILED
        assert "rate limited" in result.error
        assert channel.find_video("v0") is not None
        assert channel.last_checked > datetime(2024, 1, 1, 12, 0)

    def test_cancellation_propagates_and_keeps_channel(self, repository, channel, backfill):
        repository.add_channel(channel)
        listing = listing_for(channel, FakePopen(default=[listing_line("v0")]))
        listing.kill()

        with pytest.raises(ScanCancelledError):
            sync_channel(channel, listing, repository, backfill=backfill)

        assert [v.video_id for v in channel.videos] == ["v1", "v2"]
        backfill.assert_not_called()

    def test_removed_channel_is_not_resurrected(self, repository, channel, backfill):
        repository.add_channel(channel)
        repository.remove_channel(channel.channel_id)

        result = sync_channel(
            channel, listing_for(channel, FakePopen(default=[listing_line("v0")])), repository, backfill=backfill
        )

        assert not repository.has_channel(channel.channel_id)
        assert result.status == ChannelScanStatus.REMOVED
        assert result.videos_new == 0
        assert result.videos_fetched == 0
        assert "removed" in result.error
