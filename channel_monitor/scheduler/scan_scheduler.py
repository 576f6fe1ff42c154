"""Scan scheduler - single-flight manual and idle scans with a countdown timer.

One scheduler exists per process. It is the only place that starts channel
scans, and the only source of the "next scan in N seconds" countdown that
presentation surfaces display.

Usage:
    scheduler = ScanScheduler(repository, settings, history, is_download_active=downloads.busy)
    scheduler.add_listener(on_scan_event)
    scheduler.ensure_timer_running()
    report = scheduler.scan_all()
"""

import threading
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Literal

from pydantic import BaseModel
from rich.markup import escape

from channel_monitor.channel.feed_fetcher import backfill_channel
from channel_monitor.channel.listing import ChannelListing
from channel_monitor.channel.schemas import (
    Channel,
    ChannelScanResult,
    ChannelScanStatus,
    ScanKind,
    ScanReport,
)
from channel_monitor.channel.sync import sync_channel
from channel_monitor.core.config import Settings
from channel_monitor.core.exceptions import ScanCancelledError, ScanInProgressError
from channel_monitor.core.logging_config import get_logger, log_channel_scan_event
from channel_monitor.database.history import DownloadHistory, DownloadHistoryLookup
from channel_monitor.database.repository import ChannelRepository

logger = get_logger("scheduler")

ScanEventType = Literal["started", "channel_started", "channel_completed", "completed"]


class ScanEvent(BaseModel):
    """Progress notification delivered to scheduler listeners."""

    type: ScanEventType
    scan_kind: ScanKind
    channel_id: str | None = None
    channel_name: str | None = None
    result: ChannelScanResult | None = None
    report: ScanReport | None = None


ScanListener = Callable[[ScanEvent], None]


class ScanScheduler:
    """
    Arbitrates manual and idle scans.

    At most one scan runs at a time. Manual scans that collide with a running
    scan raise ScanInProgressError; idle ticks that collide are skipped
    silently and leave the countdown alone. Idle ticks are also skipped while
    a download is active.
    """

    def __init__(
        self,
        repository: ChannelRepository,
        settings: Settings,
        history: DownloadHistoryLookup | None = None,
        is_download_active: Callable[[], bool] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        listing_factory: Callable[..., ChannelListing] = ChannelListing,
        backfill=backfill_channel,
        poll_interval: float = 1.0,
    ):
        self.repository = repository
        self.settings = settings
        self.history = history
        self.is_download_active = is_download_active or (lambda: False)
        self._clock = clock
        self._listing_factory = listing_factory
        self._backfill = backfill
        self.poll_interval = poll_interval

        self._lock = threading.Lock()
        self._scanning = False
        self._cancel_event: threading.Event | None = None
        self._active_listing: ChannelListing | None = None
        self._last_scan_start: float | None = None

        self._timer_thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        self._listeners: list[ScanListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback: ScanListener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: ScanListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, event: ScanEvent) -> None:
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Scan listener failed on '{event.type}' event")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    @property
    def is_timer_running(self) -> bool:
        thread = self._timer_thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def _try_begin_scan(self, cancel_event: threading.Event | None = None) -> threading.Event | None:
        """Claim the scan slot. Returns the scan's cancel event, or None if busy."""
        with self._lock:
            if self._scanning:
                return None
            self._scanning = True
            self._cancel_event = cancel_event or threading.Event()
            return self._cancel_event

    def _end_scan(self) -> None:
        with self._lock:
            self._scanning = False
            self._cancel_event = None
            self._active_listing = None

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def scan_channel(self, channel_id: str, cancel_event: threading.Event | None = None) -> ScanReport:
        """
        Manually scan one channel (uncapped, feed backfill forced).

        Raises:
            ChannelNotFoundError: Unknown channel
            ScanInProgressError: Another scan is running
        """
        channel = self.repository.require_channel(channel_id)
        event = self._try_begin_scan(cancel_event)
        if event is None:
            raise ScanInProgressError("A channel scan is already in progress")
        return self._run_scan("manual", [channel], None, True, event)

    def scan_all(self, cancel_event: threading.Event | None = None) -> ScanReport:
        """
        Manually scan every monitored channel in order.

        Raises:
            ScanInProgressError: Another scan is running
        """
        event = self._try_begin_scan(cancel_event)
        if event is None:
            raise ScanInProgressError("A channel scan is already in progress")
        return self._run_scan("manual", self.repository.list_channels(), None, True, event)

    def idle_tick(self) -> ScanReport | None:
        """
        Run a capped background scan of all channels, if allowed.

        Returns:
            ScanReport, or None if the tick was skipped (auto-scan disabled,
            scan already running, or a download is active)
        """
        if not self.settings.channel_auto_scan_enabled:
            return None

        if self.is_download_active():
            logger.debug("Idle scan skipped: download in progress")
            return None

        event = self._try_begin_scan()
        if event is None:
            logger.debug("Idle scan skipped: scan already in progress")
            return None

        self._last_scan_start = self._clock()
        return self._run_scan(
            "idle",
            self.repository.list_channels(),
            self.settings.idle_scan_max_videos,
            False,
            event,
        )

    def cancel(self) -> bool:
        """
        Cancel the running scan, killing the in-flight yt-dlp process.

        Returns:
            True if a scan was running
        """
        with self._lock:
            event = self._cancel_event
            listing = self._active_listing

        if event is None:
            return False

        event.set()
        if listing is not None:
            listing.kill()
        logger.info("Channel scan cancellation requested")
        return True

    def _run_scan(
        self,
        kind: ScanKind,
        channels: Sequence[Channel],
        max_items: int | None,
        force_backfill: bool,
        cancel_event: threading.Event,
    ) -> ScanReport:
        """Scan ``channels`` in order. The caller must hold the scan slot."""
        report = ScanReport(kind=kind)

        try:
            if isinstance(self.history, DownloadHistory):
                self.history.load()

            logger.info(f"Starting {kind} scan of {len(channels)} channel(s)")
            self._emit(ScanEvent(type="started", scan_kind=kind, report=report))

            for channel in channels:
                if cancel_event.is_set():
                    report.cancelled = True
                    break

                # Removed since the snapshot was taken
                if not self.repository.has_channel(channel.channel_id):
                    continue

                self._emit(
                    ScanEvent(
                        type="channel_started",
                        scan_kind=kind,
                        channel_id=channel.channel_id,
                        channel_name=channel.channel_name,
                    )
                )

                result = self._scan_one(kind, channel, max_items, force_backfill, cancel_event)
                if result is None:
                    report.cancelled = True
                    break

                report.results.append(result)
                self._emit(
                    ScanEvent(
                        type="channel_completed",
                        scan_kind=kind,
                        channel_id=channel.channel_id,
                        channel_name=channel.channel_name,
                        result=result,
                    )
                )
        finally:
            report.finished_at = datetime.now()
            self._end_scan()

        state = "cancelled" if report.cancelled else "complete"
        logger.info(
            f"{kind.capitalize()} scan {state}: {report.videos_new} new video(s) "
            f"from {len(report.results)} channel(s)"
        )
        self._emit(ScanEvent(type="completed", scan_kind=kind, report=report))
        return report

    def _scan_one(
        self,
        kind: ScanKind,
        channel: Channel,
        max_items: int | None,
        force_backfill: bool,
        cancel_event: threading.Event,
    ) -> ChannelScanResult | None:
        """Scan one channel. Returns None if the scan was cancelled."""
        listing = self._listing_factory(
            channel.channel_url,
            max_items,
            ytdlp_path=self.settings.ytdlp_path,
            cookie_args=self.settings.cookie_args,
            cancel_event=cancel_event,
        )
        with self._lock:
            self._active_listing = listing

        try:
            return sync_channel(
                channel,
                listing,
                self.repository,
                self.history,
                scan_kind=kind,
                force_backfill=force_backfill,
                feed_timeout=self.settings.feed_timeout_seconds,
                backfill=self._backfill,
            )
        except ScanCancelledError:
            log_channel_scan_event(logger, channel.channel_id, channel.channel_name, "cancelled", scan_kind=kind)
            return None
        except Exception as e:
            logger.debug(f"Scan of {escape(channel.display_name)} failed", exc_info=True)
            log_channel_scan_event(
                logger, channel.channel_id, channel.channel_name, "failed", scan_kind=kind, error=str(e)
            )
            return ChannelScanResult(
                channel_id=channel.channel_id,
                channel_name=channel.channel_name,
                status=ChannelScanStatus.FAILED,
                listing_status=listing.status,
                error=str(e),
            )
        finally:
            with self._lock:
                self._active_listing = None

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def seconds_until_next_scan(self) -> int:
        """
        Seconds until the next idle scan.

        Returns:
            Remaining seconds (never negative), or -1 when auto-scan is
            disabled or the timer is not running
        """
        if not self.settings.channel_auto_scan_enabled or not self.is_timer_running:
            return -1
        if self._last_scan_start is None:
            return 0
        elapsed = self._clock() - self._last_scan_start
        return max(0, int(self.settings.scan_interval_seconds - elapsed))

    def start(self) -> None:
        """Start the idle timer thread. The first idle scan is one interval away."""
        if self.is_timer_running:
            return

        self._stop_event = threading.Event()
        self._last_scan_start = self._clock()
        self._timer_thread = threading.Thread(target=self._timer_loop, name="channel-scan-timer", daemon=True)
        self._timer_thread.start()
        logger.debug(f"Scan timer started (interval {self.settings.channel_scan_interval_minutes} min)")

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the idle timer. A scan already running is not cancelled."""
        self._stop_event.set()
        thread = self._timer_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._timer_thread = None
        logger.debug("Scan timer stopped")

    def ensure_timer_running(self) -> bool:
        """
        Start the timer if auto-scan is enabled and there is something to scan.

        Returns:
            True if the timer is running afterwards
        """
        if (
            self.settings.channel_auto_scan_enabled
            and not self.is_timer_running
            and self.repository.list_channels()
        ):
            self.start()
        return self.is_timer_running

    def _timer_loop(self) -> None:
        stop_event = self._stop_event
        while not stop_event.wait(self.poll_interval):
            if self.seconds_until_next_scan() != 0:
                continue
            try:
                self.idle_tick()
            except Exception:
                logger.exception("Idle scan failed")
