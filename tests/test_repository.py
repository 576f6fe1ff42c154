"""Tests for the JSON channel repository."""

import json
import os
from datetime import date, datetime

import pytest

from channel_monitor.channel.schemas import VideoAction, VideoStatus
from channel_monitor.core.exceptions import (
    ChannelAlreadyMonitoredError,
    ChannelNotFoundError,
    InvalidStatusTransitionError,
    VideoNotFoundError,
)
from channel_monitor.database.repository import DATA_FILE_NAME, ChannelRepository

from conftest import make_channel, make_video


class TestChannels:
    """Test channel-level operations."""

    def test_add_and_get(self, repository):
        repository.add_channel(make_channel("UC_a"))
        assert repository.has_channel("uc_A")
        assert repository.get_channel("UC_a").channel_name == "Channel UC_a"
        assert repository.get_channel("UC_missing") is None
        assert repository.get_channel("") is None

    def test_duplicate_add_rejected(self, repository):
        repository.add_channel(make_channel("UC_a"))
        with pytest.raises(ChannelAlreadyMonitoredError, match="already being monitored"):
            repository.add_channel(make_channel("uc_a", channel_name="Other"))
        assert len(repository.list_channels()) == 1

    def test_list_channels_is_a_snapshot(self, repository):
        repository.add_channel(make_channel("UC_a"))
        snapshot = repository.list_channels()
        snapshot.clear()
        repository.add_channel(make_channel("UC_b"))

        assert snapshot == []
        assert [c.channel_id for c in repository.list_channels()] == ["UC_a", "UC_b"]

    def test_remove_deletes_banner(self, repository):
        banner = repository.banner_storage_path() / "UC_a.jpg"
        banner.write_bytes(b"\xff\xd8")
        repository.add_channel(make_channel("UC_a", banner_path=str(banner)))

        assert repository.remove_channel("UC_a") is True
        assert not banner.exists()
        assert repository.remove_channel("UC_a") is False

    def test_update_channel(self, repository):
        repository.add_channel(make_channel("UC_a"))
        assert repository.update_channel(make_channel("UC_a", channel_name="Renamed"))
        assert repository.get_channel("UC_a").channel_name == "Renamed"
        assert not repository.update_channel(make_channel("UC_zz"))

    def test_require_channel(self, repository):
        with pytest.raises(ChannelNotFoundError):
            repository.require_channel("UC_nope")


class TestReset:
    """Test reset_channel."""

    @pytest.fixture
    def populated(self, repository):
        videos = [
            make_video("n", VideoStatus.NEW),
            make_video("s", VideoStatus.SNOOZED),
            make_video("w", VideoStatus.WATCHED),
            make_video("d", VideoStatus.DOWNLOADED),
            make_video("i", VideoStatus.IGNORED),
        ]
        repository.add_channel(make_channel("UC_a", videos=videos, last_checked=datetime(2024, 1, 1)))
        return repository

    def test_keeps_only_ignored(self, populated):
        removed = populated.reset_channel("UC_a")

        channel = populated.get_channel("UC_a")
        assert removed == 4
        assert [v.video_id for v in channel.videos] == ["i"]
        assert channel.last_checked is None

    def test_include_ignored(self, populated):
        assert populated.reset_channel("UC_a", include_ignored=True) == 5
        assert populated.get_channel("UC_a").videos == []

    def test_persisted(self, populated):
        populated.reset_channel("UC_a")
        reloaded = ChannelRepository(populated.data_dir)
        assert [v.video_id for v in reloaded.get_channel("UC_a").videos] == ["i"]


class TestVideos:
    """Test video-level operations."""

    def test_apply_video_action_persists(self, repository):
        repository.add_channel(make_channel("UC_a", videos=[make_video("v1")]))

        video = repository.apply_video_action("UC_a", "V1", VideoAction.SNOOZE)

        assert video.status == VideoStatus.SNOOZED
        reloaded = ChannelRepository(repository.data_dir)
        assert reloaded.get_channel("UC_a").find_video("v1").status == VideoStatus.SNOOZED

    def test_apply_invalid_action(self, repository):
        repository.add_channel(make_channel("UC_a", videos=[make_video("v1", VideoStatus.DOWNLOADED)]))
        with pytest.raises(InvalidStatusTransitionError):
            repository.apply_video_action("UC_a", "v1", VideoAction.WAKE)
        assert repository.get_channel("UC_a").find_video("v1").status == VideoStatus.DOWNLOADED

    def test_apply_unknown_video(self, repository):
        repository.add_channel(make_channel("UC_a"))
        with pytest.raises(VideoNotFoundError):
            repository.apply_video_action("UC_a", "nope", VideoAction.SNOOZE)

    def test_snooze_all(self, repository):
        videos = [make_video("a"), make_video("b", VideoStatus.IGNORED), make_video("c")]
        repository.add_channel(make_channel("UC_a", videos=videos))

        assert repository.snooze_all("UC_a") == 2
        counts = repository.get_channel("UC_a").count_by_status()
        assert counts[VideoStatus.SNOOZED] == 2
        assert counts[VideoStatus.IGNORED] == 1

    def test_mark_video_downloaded_first_match_wins(self, repository):
        repository.add_channel(make_channel("UC_a", videos=[make_video("dup")]))
        repository.add_channel(make_channel("UC_b", videos=[make_video("dup")]))

        video = repository.mark_video_downloaded("DUP")

        assert video.status == VideoStatus.DOWNLOADED
        assert repository.get_channel("UC_a").videos[0].status == VideoStatus.DOWNLOADED
        assert repository.get_channel("UC_b").videos[0].status == VideoStatus.NEW
        assert repository.mark_video_downloaded("missing") is None

    def test_new_video_count_and_listing(self, repository):
        repository.add_channel(
            make_channel(
                "UC_a",
                videos=[
                    make_video("old", upload_date=date(2023, 1, 1)),
                    make_video("undated"),
                    make_video("seen", VideoStatus.WATCHED),
                ],
            )
        )
        repository.add_channel(make_channel("UC_b", videos=[make_video("recent", upload_date=date(2024, 6, 1))]))

        assert repository.get_new_video_count() == 3
        ordered = [video.video_id for _, video in repository.get_all_new_videos()]
        assert ordered == ["recent", "old", "undated"]


class TestPersistence:
    """Test the on-disk format."""

    def test_camel_case_round_trip(self, repository):
        channel = make_channel(
            "UC_a",
            videos=[make_video("v1", VideoStatus.SNOOZED, upload_date=date(2024, 3, 1), duration_seconds=90.0)],
            last_checked=datetime(2024, 3, 2, 8, 0),
        )
        repository.add_channel(channel)

        raw = json.loads((repository.data_dir / DATA_FILE_NAME).read_text(encoding="utf-8"))
        stored = raw[0]
        assert stored["channelId"] == "UC_a"
        assert stored["lastChecked"] == "2024-03-02T08:00:00"
        assert stored["videos"][0]["videoId"] == "v1"
        assert stored["videos"][0]["status"] == "Snoozed"
        assert stored["videos"][0]["isNew"] is False
        assert stored["videos"][0]["uploadDate"] == "2024-03-01"

        reloaded = ChannelRepository(repository.data_dir).get_channel("UC_a")
        assert reloaded.model_dump() == channel.model_dump()

    @pytest.mark.parametrize("content", ["", "[]", "{broken", '{"not": "a list"}', '[{"channelName": "no id"}]'])
    def test_unreadable_store_loads_empty(self, tmp_path, content):
        (tmp_path / DATA_FILE_NAME).write_text(content, encoding="utf-8")
        assert ChannelRepository(tmp_path).list_channels() == []

    def test_save_failure_is_reported(self, repository, monkeypatch):
        repository.add_channel(make_channel("UC_a"))

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", failing_replace)

        assert repository.save() is False
        # In-memory state is kept and no temp files are left behind
        assert repository.has_channel("UC_a")
        assert [p.name for p in repository.data_dir.iterdir() if p.suffix == ".tmp"] == []

    def test_save_replaces_whole_file(self, repository):
        repository.add_channel(make_channel("UC_a"))
        repository.add_channel(make_channel("UC_b"))
        repository.remove_channel("UC_a")

        raw = json.loads((repository.data_dir / DATA_FILE_NAME).read_text(encoding="utf-8"))
        assert [c["channelId"] for c in raw] == ["UC_b"]
