"""Tests for the ambient core: HTTP sessions and logging."""

import logging

import pytest

from channel_monitor.core.http_session import (
    FEED_SESSION,
    IMAGE_SESSION,
    USER_AGENT,
    _sessions,
    close_all_sessions,
    get_session,
)
from channel_monitor.core.logging_config import (
    ROOT_LOGGER_NAME,
    get_logger,
    log_channel_scan_event,
    setup_logging,
)


class TestHttpSession:
    """Test the session cache."""

    def teardown_method(self):
        close_all_sessions()

    def test_sessions_are_cached_by_name(self):
        first = get_session("test")
        assert get_session("test") is first
        assert get_session("other") is not first

    def test_feed_session_never_retries(self):
        session = get_session(FEED_SESSION)
        adapter = session.get_adapter("https://www.youtube.com")
        assert adapter.max_retries.total == 0
        assert "atom" in session.headers["Accept"]
        assert session.headers["User-Agent"] == USER_AGENT

    def test_image_session_retries(self):
        adapter = get_session(IMAGE_SESSION).get_adapter("https://yt3.ggpht.com")
        assert adapter.max_retries.total == 2

    def test_unknown_name_uses_image_policy(self):
        adapter = get_session("other").get_adapter("https://example.com")
        assert adapter.max_retries.total == 2

    def test_close_all(self):
        get_session("test")
        close_all_sessions()
        assert _sessions == {}


class TestLogging:
    """Test logging setup and scan events."""

    @pytest.fixture
    def log_file(self, tmp_path):
        path = tmp_path / "logs" / "channel_monitor.log"
        setup_logging(level="DEBUG", log_file=path)
        yield path
        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in root.handlers:
            handler.close()
        root.handlers.clear()

    def test_child_loggers(self):
        assert get_logger("scheduler").name == "channel_monitor.scheduler"
        assert get_logger().name == "channel_monitor"

    def test_scan_events_reach_log_file(self, log_file):
        logger = get_logger("test")
        log_channel_scan_event(logger, "UC1", "[bold]Name[/bold]", "completed", videos_fetched=5, videos_new=2)
        log_channel_scan_event(logger, "UC1", "", "failed", error="boom")

        text = log_file.read_text(encoding="utf-8")
        assert "Channel scan complete" in text
        assert "(2 new of 5)" in text
        assert "Channel scan failed: UC1: boom" in text
        assert "ERROR" in text

    def test_extra_fields(self, log_file):
        records = []

        class Collect(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger = get_logger("test")
        logger.addHandler(Collect())
        try:
            log_channel_scan_event(logger, "UC1", "Name", "cancelled", scan_kind="idle")
        finally:
            logger.handlers.clear()

        assert records[0].levelno == logging.WARNING
        assert records[0].channel_id == "UC1"
        assert records[0].scan_kind == "idle"
