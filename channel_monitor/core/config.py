"""Configuration settings for the Channel Monitor."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = "~/.local/share/channel_monitor"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and config.yaml."""

    model_config = SettingsConfigDict(  # type: ignore[assignment]
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Allow extra env vars not defined in model
    )

    # Scanning
    channel_scan_interval_minutes: int = 60
    max_channel_videos_shown: int = 0  # 0 = unlimited
    channel_auto_scan_enabled: bool = True
    idle_scan_max_videos: int = 20

    # yt-dlp
    ytdlp_path: str = "yt-dlp"
    cookies_file: str | None = None
    resolver_timeout_seconds: int = 60

    # Feed backfill
    feed_timeout_seconds: float = 15.0

    # Banner cache
    banner_ttl_days: int = 7

    # Storage
    data_dir: str = DEFAULT_DATA_DIR
    history_dir: str | None = None  # Defaults to data_dir

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def scan_interval_seconds(self) -> int:
        """Get idle scan interval in seconds."""
        return self.channel_scan_interval_minutes * 60

    @property
    def data_path(self) -> Path:
        """Get data directory as an expanded Path."""
        return Path(self.data_dir).expanduser()

    @property
    def history_path(self) -> Path:
        """Get download-history directory, falling back to the data directory."""
        if self.history_dir:
            return Path(self.history_dir).expanduser()
        return self.data_path

    @property
    def cookie_args(self) -> list[str]:
        """yt-dlp arguments for the configured cookies file, if it exists."""
        if self.cookies_file:
            cookie_path = Path(self.cookies_file).expanduser()
            if cookie_path.exists():
                return ["--cookies", str(cookie_path)]
        return []


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_yaml_config(config_path: Path | str | None = None) -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to ./config.yaml or ./config.yml

    Returns:
        Dictionary with configuration values
    """
    if config_path is None:
        possible_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(DEFAULT_DATA_DIR).expanduser() / "config.yaml",
        ]
        for path in possible_paths:
            if path.exists():
                config_path = path
                break

    if config_path is None or not Path(config_path).exists():
        return {}

    try:
        with open(config_path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        print(f"Warning: Failed to load config file: {e}")
        return {}


def apply_yaml_config(settings: Settings, config: dict[str, Any]) -> Settings:
    """
    Apply YAML configuration to settings object.

    Environment variables take precedence over YAML config: a YAML value is only
    applied while the field still holds its default.

    Args:
        settings: Settings object to update
        config: Configuration dictionary from YAML

    Returns:
        Updated Settings object
    """
    defaults = Settings.model_fields

    def _apply(field: str, value: Any) -> None:
        if getattr(settings, field) == defaults[field].default:
            setattr(settings, field, value)

    if "channel_monitor" in config:
        cm = config["channel_monitor"] or {}
        if "scan_interval_minutes" in cm:
            _apply("channel_scan_interval_minutes", int(cm["scan_interval_minutes"]))
        if "max_videos_shown" in cm:
            _apply("max_channel_videos_shown", int(cm["max_videos_shown"]))
        if "auto_scan_enabled" in cm:
            _apply("channel_auto_scan_enabled", bool(cm["auto_scan_enabled"]))
        if "idle_scan_max_videos" in cm:
            _apply("idle_scan_max_videos", int(cm["idle_scan_max_videos"]))
        if "feed_timeout_seconds" in cm:
            _apply("feed_timeout_seconds", float(cm["feed_timeout_seconds"]))
        if "banner_ttl_days" in cm:
            _apply("banner_ttl_days", int(cm["banner_ttl_days"]))

    if "ytdlp" in config:
        yt = config["ytdlp"] or {}
        if "path" in yt:
            _apply("ytdlp_path", str(yt["path"]))
        if "cookies_file" in yt:
            _apply("cookies_file", yt["cookies_file"])
        if "timeout" in yt:
            _apply("resolver_timeout_seconds", int(yt["timeout"]))

    if "storage" in config:
        storage = config["storage"] or {}
        if "data_dir" in storage:
            _apply("data_dir", str(storage["data_dir"]))
        if "history_dir" in storage:
            _apply("history_dir", storage["history_dir"])

    if "logging" in config:
        log = config["logging"] or {}
        if "level" in log:
            _apply("log_level", str(log["level"]).upper())
        if "file" in log:
            _apply("log_file", log["file"])

    return settings


def get_settings_with_yaml(config_path: Path | str | None = None) -> Settings:
    """
    Get settings with YAML configuration applied.

    Priority: Environment Variables > YAML Config > Defaults

    Args:
        config_path: Optional path to config file

    Returns:
        Settings object with YAML configuration applied
    """
    settings = get_settings()
    config = load_yaml_config(config_path)
    return apply_yaml_config(settings, config)
