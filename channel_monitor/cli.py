"""CLI for Channel Monitor."""

import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import NoReturn

import typer
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from channel_monitor.channel.normalizer import is_valid_channel_url, normalize_channel_url
from channel_monitor.channel.resolver import download_channel_banner, get_channel_info
from channel_monitor.channel.schemas import (
    Channel,
    ChannelScanStatus,
    ScanReport,
    VideoAction,
    VideoStatus,
)
from channel_monitor.channel.status import available_actions, filter_videos
from channel_monitor.core.config import Settings, get_settings_with_yaml
from channel_monitor.core.exceptions import ChannelMonitorError
from channel_monitor.core.http_session import close_all_sessions
from channel_monitor.core.logging_config import setup_logging
from channel_monitor.database.history import DownloadHistory
from channel_monitor.database.repository import ChannelRepository
from channel_monitor.scheduler import ScanEvent, ScanScheduler

app = typer.Typer(help="Channel Monitor - track new uploads on YouTube channels")
console = Console()

STATUS_STYLES = {
    VideoStatus.NEW: "bold green",
    VideoStatus.SNOOZED: "yellow",
    VideoStatus.WATCHED: "cyan",
    VideoStatus.DOWNLOADED: "dim",
    VideoStatus.IGNORED: "dim red",
}


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="Path to config.yaml"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Override the data directory"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable debug logging"),
):
    """Load settings and configure logging for every command."""
    settings = get_settings_with_yaml(config).model_copy()
    if data_dir is not None:
        settings.data_dir = str(data_dir)

    setup_logging(level="DEBUG" if verbose else settings.log_level, log_file=settings.log_file)
    ctx.obj = settings
    ctx.call_on_close(close_all_sessions)


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj


def _repository(settings: Settings) -> ChannelRepository:
    return ChannelRepository(settings.data_path)


def _scheduler(settings: Settings, repo: ChannelRepository) -> ScanScheduler:
    return ScanScheduler(repo, settings, DownloadHistory(settings.history_path))


def _fail(message: str) -> NoReturn:
    rprint(f"[red]✗ Error: {escape(message)}[/red]")
    raise typer.Exit(1)


def _run_cancellable(scheduler: ScanScheduler, scan: Callable[[], ScanReport]) -> ScanReport:
    """Run a scan on a worker thread so Ctrl-C can cancel it cooperatively."""
    outcome: dict[str, object] = {}

    def _worker() -> None:
        try:
            outcome["report"] = scan()
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=_worker, name="channel-scan", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=0.2)
    except KeyboardInterrupt:
        rprint("\n[yellow]Cancelling scan...[/yellow]")
        scheduler.cancel()
        worker.join()

    if "error" in outcome:
        raise outcome["error"]  # type: ignore[misc]
    return outcome["report"]  # type: ignore[return-value]


def _print_scan_event(event: ScanEvent) -> None:
    if event.type == "channel_started":
        rprint(f"[dim]Scanning {escape(event.channel_name or event.channel_id or '')}...[/dim]")
    elif event.type == "channel_completed" and event.result is not None:
        result = event.result
        label = escape(result.channel_name or result.channel_id)
        if result.status == ChannelScanStatus.OK:
            rprint(f"   [green]✓[/green] {label}: {result.videos_new} new of {result.videos_fetched}")
        else:
            rprint(f"   [red]✗[/red] {label}: {escape(result.error or result.status.value)}")


def _print_report(report: ScanReport) -> None:
    if report.cancelled:
        rprint(f"\n[yellow]Scan cancelled after {len(report.results)} channel(s)[/yellow]")
    else:
        rprint(f"\n[green]✓ Scan complete![/green] {report.videos_new} new video(s)")
    if report.failed:
        rprint(f"   [red]{len(report.failed)} channel(s) failed[/red]")


def _format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


@app.command("add")
def channel_add(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Channel URL or @handle"),
    no_scan: bool = typer.Option(False, "--no-scan", help="Don't scan the channel after adding it"),
):
    """Add a YouTube channel to monitoring."""
    settings = _settings(ctx)

    normalized = normalize_channel_url(url)
    if not is_valid_channel_url(normalized):
        _fail(f"Not a YouTube channel URL: {url}")

    try:
        repo = _repository(settings)
        rprint(f"\n[bold blue]Adding channel: {escape(normalized)}[/bold blue]\n")

        channel = get_channel_info(
            normalized,
            ytdlp_path=settings.ytdlp_path,
            cookie_args=settings.cookie_args,
            timeout=settings.resolver_timeout_seconds,
        )
        if repo.has_channel(channel.channel_id):
            _fail(f"Channel '{channel.display_name}' is already being monitored")

        download_channel_banner(
            channel,
            repo.banner_storage_path(),
            ttl_days=settings.banner_ttl_days,
            ytdlp_path=settings.ytdlp_path,
            cookie_args=settings.cookie_args,
            timeout=settings.resolver_timeout_seconds,
        )
        repo.add_channel(channel)

        rprint("[green]✓ Channel added successfully![/green]")
        rprint(f"   Channel ID: {channel.channel_id}")
        rprint(f"   Name: {escape(channel.display_name)}")
        rprint(f"   URL: {escape(channel.channel_url)}\n")

        if not no_scan:
            scheduler = _scheduler(settings, repo)
            scheduler.add_listener(_print_scan_event)
            _print_report(_run_cancellable(scheduler, lambda: scheduler.scan_channel(channel.channel_id)))

    except ChannelMonitorError as e:
        _fail(str(e))


@app.command("remove")
def channel_remove(
    ctx: typer.Context,
    channel_id: str = typer.Argument(..., help="Channel ID to stop monitoring"),
):
    """Stop monitoring a channel."""
    repo = _repository(_settings(ctx))
    channel = repo.get_channel(channel_id)
    if channel is None or not repo.remove_channel(channel_id):
        _fail(f"Channel not monitored: {channel_id}")
    rprint(f"[green]✓ Removed {escape(channel.display_name)}[/green]")


@app.command("list")
def channel_list(ctx: typer.Context):
    """List monitored channels."""
    settings = _settings(ctx)
    repo = _repository(settings)
    channels = repo.list_channels()

    if not channels:
        rprint("\n[yellow]No channels being monitored yet.[/yellow]\n")
        rprint("Use [bold]channel-monitor add @Handle[/bold] to add a channel.\n")
        return

    rprint("\n[bold blue]📺 Monitored Channels[/bold blue]\n")

    table = Table()
    table.add_column("Channel ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("New", style="green", justify="right")
    table.add_column("Videos", justify="right")
    table.add_column("Last Checked", style="dim")

    for channel in channels:
        last_checked = channel.last_checked.strftime("%Y-%m-%d %H:%M") if channel.last_checked else "Never"
        table.add_row(
            channel.channel_id,
            escape(channel.display_name),
            str(channel.new_count),
            str(len(channel.videos)),
            last_checked,
        )

    console.print(table)
    rprint(f"\n[green]Total: {len(channels)} channel(s), {repo.get_new_video_count()} new video(s)[/green]")
    if settings.channel_auto_scan_enabled:
        rprint(f"[dim]Idle scans run every {settings.channel_scan_interval_minutes} min under 'watch'[/dim]\n")


@app.command("videos")
def channel_videos(
    ctx: typer.Context,
    channel_id: str = typer.Argument(..., help="Channel ID"),
    status: VideoStatus | None = typer.Option(
        None, "--status", "-s", case_sensitive=False, help="Only show this status"
    ),
    show_all: bool = typer.Option(False, "--all", help="Include ignored and downloaded videos"),
    search: str = typer.Option("", "--search", "-q", help="Filter by title or video ID"),
):
    """List a channel's videos."""
    settings = _settings(ctx)
    repo = _repository(settings)
    channel = repo.get_channel(channel_id)
    if channel is None:
        _fail(f"Channel not monitored: {channel_id}")

    videos = filter_videos(
        channel.videos,
        status_filter=status,
        show_all=show_all,
        search=search,
        max_shown=settings.max_channel_videos_shown,
    )

    rprint(f"\n[bold blue]📹 {escape(channel.display_name)}[/bold blue]\n")
    if not videos:
        rprint("[yellow]No videos to show.[/yellow]\n")
        return

    table = Table()
    table.add_column("Video ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Uploaded", style="dim")
    table.add_column("Length", justify="right")
    table.add_column("Status")
    table.add_column("Actions", style="dim")

    for video in videos:
        buttons = [b.label for b in available_actions(video.status) if b is not None]
        table.add_row(
            video.video_id,
            escape(video.title),
            video.upload_date.isoformat() if video.upload_date else "-",
            _format_duration(video.duration_seconds),
            f"[{STATUS_STYLES[video.status]}]{video.status.value}[/]",
            " / ".join(buttons),
        )

    console.print(table)
    counts = channel.count_by_status()
    summary = ", ".join(f"{s.value}: {n}" for s, n in counts.items() if n)
    rprint(f"\n[dim]{len(videos)} shown ({summary})[/dim]\n")


@app.command("scan")
def channel_scan(
    ctx: typer.Context,
    channel_id: str | None = typer.Argument(None, help="Channel ID (default: all channels)"),
):
    """Scan one or all channels for new videos. Ctrl-C cancels."""
    settings = _settings(ctx)
    repo = _repository(settings)

    if channel_id is None and not repo.list_channels():
        rprint("\n[yellow]No channels being monitored yet.[/yellow]\n")
        return

    scheduler = _scheduler(settings, repo)
    scheduler.add_listener(_print_scan_event)

    try:
        if channel_id is None:
            report = _run_cancellable(scheduler, scheduler.scan_all)
        else:
            report = _run_cancellable(scheduler, lambda: scheduler.scan_channel(channel_id))
    except ChannelMonitorError as e:
        _fail(str(e))

    _print_report(report)


@app.command("reset")
def channel_reset(
    ctx: typer.Context,
    channel_id: str = typer.Argument(..., help="Channel ID"),
    include_ignored: bool = typer.Option(False, "--include-ignored", help="Also forget ignored videos"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
):
    """Forget a channel's videos so the next scan rediscovers them."""
    repo = _repository(_settings(ctx))
    channel = repo.get_channel(channel_id)
    if channel is None:
        _fail(f"Channel not monitored: {channel_id}")

    if not yes:
        kept = "" if include_ignored else " (ignored videos are kept)"
        typer.confirm(f"Reset {channel.display_name}{kept}?", abort=True)

    removed = repo.reset_channel(channel_id, include_ignored=include_ignored)
    rprint(f"[green]✓ Removed {removed} video(s) from {escape(channel.display_name)}[/green]")


@app.command("action")
def video_action(
    ctx: typer.Context,
    channel_id: str = typer.Argument(..., help="Channel ID"),
    video_id: str = typer.Argument(..., help="Video ID"),
    action: VideoAction = typer.Argument(..., help="Action to apply"),
):
    """Apply a status action (snooze, unsnooze, open, ignore, wake, download) to a video."""
    repo = _repository(_settings(ctx))
    try:
        video = repo.apply_video_action(channel_id, video_id, action)
    except ChannelMonitorError as e:
        _fail(str(e))

    rprint(f"[green]✓ {video.video_id} is now {video.status.value}[/green]")
    if action == VideoAction.OPEN:
        rprint(f"   {video.watch_url}")


@app.command("snooze-all")
def channel_snooze_all(
    ctx: typer.Context,
    channel_id: str = typer.Argument(..., help="Channel ID"),
):
    """Snooze every new video in a channel."""
    repo = _repository(_settings(ctx))
    try:
        count = repo.snooze_all(channel_id)
    except ChannelMonitorError as e:
        _fail(str(e))
    rprint(f"[green]✓ Snoozed {count} video(s)[/green]")


@app.command("new")
def new_videos(ctx: typer.Context):
    """Show new videos across all channels, most recent first."""
    settings = _settings(ctx)
    repo = _repository(settings)
    pairs = repo.get_all_new_videos()

    if not pairs:
        rprint("\n[green]No new videos.[/green]\n")
        return

    if settings.max_channel_videos_shown > 0:
        pairs = pairs[: settings.max_channel_videos_shown]

    table = Table()
    table.add_column("Channel", style="cyan")
    table.add_column("Video ID", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Uploaded", style="dim")

    for channel, video in pairs:
        table.add_row(
            escape(channel.display_name),
            video.video_id,
            escape(video.title),
            video.upload_date.isoformat() if video.upload_date else "-",
        )

    console.print(table)
    rprint(f"\n[green]{repo.get_new_video_count()} new video(s)[/green]\n")


@app.command("watch")
def watch(
    ctx: typer.Context,
    now: bool = typer.Option(False, "--now", help="Run an idle scan immediately"),
):
    """Run idle scans in the foreground until interrupted."""
    settings = _settings(ctx)
    if not settings.channel_auto_scan_enabled:
        _fail("Auto-scan is disabled (CHANNEL_AUTO_SCAN_ENABLED=false)")

    repo = _repository(settings)
    scheduler = _scheduler(settings, repo)

    def _on_event(event: ScanEvent) -> None:
        if event.type == "completed" and event.report is not None:
            _print_report(event.report)
            rprint(f"[dim]Next scan in {scheduler.seconds_until_next_scan() // 60} min[/dim]")

    scheduler.add_listener(_print_scan_event)
    scheduler.add_listener(_on_event)

    if not scheduler.ensure_timer_running():
        _fail("No channels to watch")

    rprint(
        f"[bold blue]Watching {len(repo.list_channels())} channel(s), "
        f"every {settings.channel_scan_interval_minutes} min. Ctrl-C to stop.[/bold blue]"
    )

    try:
        if now:
            scheduler.idle_tick()
        while scheduler.is_timer_running:
            time.sleep(1)
    except KeyboardInterrupt:
        rprint("\n[yellow]Stopping...[/yellow]")
        scheduler.cancel()
    finally:
        scheduler.stop()


@app.command("refresh-banner")
def refresh_banner(
    ctx: typer.Context,
    channel_id: str = typer.Argument(..., help="Channel ID"),
):
    """Re-download a channel's banner image, ignoring the cache."""
    settings = _settings(ctx)
    repo = _repository(settings)
    channel: Channel | None = repo.get_channel(channel_id)
    if channel is None:
        _fail(f"Channel not monitored: {channel_id}")

    updated = download_channel_banner(
        channel,
        repo.banner_storage_path(),
        force=True,
        ttl_days=settings.banner_ttl_days,
        ytdlp_path=settings.ytdlp_path,
        cookie_args=settings.cookie_args,
        timeout=settings.resolver_timeout_seconds,
    )
    if not updated:
        _fail(f"Could not fetch a banner for {channel.display_name}")

    repo.update_channel(channel)
    rprint(f"[green]✓ Banner saved to {escape(channel.banner_path)}[/green]")


if __name__ == "__main__":
    app()
