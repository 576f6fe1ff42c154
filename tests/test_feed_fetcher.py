"""Tests for the feed date backfill."""

import xml.etree.ElementTree as ET
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from channel_monitor.channel.feed_fetcher import (
    apply_feed_dates,
    backfill_channel,
    fetch_feed_dates,
    feed_url,
    parse_feed_dates,
    parse_published,
)
from channel_monitor.channel.schemas import BackfillStatus

from conftest import make_channel, make_video

FEED_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015"
      xmlns:media="http://search.yahoo.com/mrss/"
      xmlns="http://www.w3.org/2005/Atom">
  <yt:channelId>UC_known</yt:channelId>
  <title>Known Channel</title>
  <entry>
    <id>yt:video:v1</id>
    <yt:videoId>v1</yt:videoId>
    <title>First</title>
    <published>2024-03-01T15:00:00+00:00</published>
  </entry>
  <entry>
    <id>yt:video:V2</id>
    <yt:videoId>V2</yt:videoId>
    <title>Second</title>
    <published>2024-02-20T08:30:00Z</published>
  </entry>
  <entry>
    <yt:videoId>broken</yt:videoId>
    <published>yesterday</published>
  </entry>
  <entry>
    <title>No id</title>
    <published>2024-01-01T00:00:00+00:00</published>
  </entry>
</feed>
"""


class TestParseFeed:
    """Test feed parsing."""

    def test_parse_feed_dates(self):
        dates = parse_feed_dates(FEED_XML)
        assert dates == {"v1": date(2024, 3, 1), "v2": date(2024, 2, 20)}

    def test_invalid_xml_raises(self):
        with pytest.raises(ET.ParseError):
            parse_feed_dates(b"<html><body>oops")

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-03-01T15:00:00+00:00", date(2024, 3, 1)),
            ("2024-03-01T23:59:59Z", date(2024, 3, 1)),
            ("", None),
            (None, None),
            ("not a date", None),
        ],
    )
    def test_parse_published(self, value, expected):
        assert parse_published(value) == expected

    def test_feed_url(self):
        assert feed_url("UC123") == "https://www.youtube.com/feeds/videos.xml?channel_id=UC123"


class TestApplyFeedDates:
    """Test date application."""

    def test_only_unknown_dates_are_set(self):
        known = make_video("v1", upload_date=date(2020, 1, 1))
        unknown = make_video("v2")
        untouched = make_video("v3")
        channel = make_channel(videos=[known, unknown, untouched])

        updated = apply_feed_dates(channel, {"v1": date(2024, 3, 1), "v2": date(2024, 2, 20), "zz": date(2024, 1, 1)})

        assert updated == 1
        assert known.upload_date == date(2020, 1, 1)
        assert unknown.upload_date == date(2024, 2, 20)
        assert untouched.upload_date is None


class TestBackfillChannel:
    """Test backfill_channel."""

    def test_skipped_without_new_videos(self):
        fetcher = MagicMock()
        result = backfill_channel(make_channel(videos=[make_video("v1")]), new_videos=0, fetcher=fetcher)
        assert result.status == BackfillStatus.SKIPPED
        fetcher.assert_not_called()

    def test_forced_runs_without_new_videos(self):
        channel = make_channel(videos=[make_video("v1")])
        result = backfill_channel(channel, force=True, fetcher=lambda cid, timeout: {"v1": date(2024, 3, 1)})
        assert result.status == BackfillStatus.OK
        assert result.dates_updated == 1

    def test_skipped_without_channel_id(self):
        channel = make_channel(channel_id="")
        result = backfill_channel(channel, force=True, fetcher=MagicMock())
        assert result.status == BackfillStatus.SKIPPED

    def test_failure_is_reported_not_raised(self):
        channel = make_channel(videos=[make_video("v1")])

        def failing(channel_id, timeout):
            raise requests.ConnectionError("network down")

        result = backfill_channel(channel, new_videos=1, fetcher=failing)

        assert result.status == BackfillStatus.FAILED
        assert "network down" in result.error
        assert channel.videos[0].upload_date is None

    def test_timeout_passed_to_fetcher(self):
        fetcher = MagicMock(return_value={})
        backfill_channel(make_channel(), new_videos=1, timeout=3.5, fetcher=fetcher)
        fetcher.assert_called_once_with("UC_test", 3.5)


class TestFetchFeedDates:
    """Test the HTTP path with a fake response."""

    def test_fetch(self):
        response = MagicMock(spec=requests.Response)
        response.content = FEED_XML

        with patch("channel_monitor.channel.feed_fetcher.get", return_value=response) as mock_get:
            dates = fetch_feed_dates("UC_known", timeout=5)

        mock_get.assert_called_once_with(
            feed_url("UC_known"), session_name="feed", timeout=5
        )
        response.raise_for_status.assert_called_once()
        assert dates["v1"] == date(2024, 3, 1)

    def test_http_error_propagates(self):
        response = MagicMock(spec=requests.Response)
        response.raise_for_status.side_effect = requests.HTTPError("404")

        with patch("channel_monitor.channel.feed_fetcher.get", return_value=response):
            with pytest.raises(requests.HTTPError):
                fetch_feed_dates("UC_missing")

    def test_end_to_end_backfill_swallows_http_error(self):
        response = MagicMock(spec=requests.Response)
        response.raise_for_status.side_effect = requests.HTTPError("500")
        channel = make_channel(videos=[make_video("v1")])

        with patch("channel_monitor.channel.feed_fetcher.get", return_value=response):
            result = backfill_channel(channel, new_videos=1)

        assert result.status == BackfillStatus.FAILED
