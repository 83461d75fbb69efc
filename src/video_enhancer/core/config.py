"""Configuration management for video_enhancer.

This module provides a centralized configuration system that loads and
validates settings from a JSON file, with environment variable overrides
taking precedence over the file.

Example:
    >>> from video_enhancer.core.config import Config
    >>> config = Config.load()
    >>> print(config.encoding.timeout_seconds)  # 600
    >>> config.encoding.quality = "high"
    >>> config.save()

    >>> # Environment variable override
    >>> # VIDEO_ENHANCER_ENCODING__TIMEOUT_SECONDS=1200
    >>> config = Config.load(force_reload=True)
    >>> print(config.encoding.timeout_seconds)  # 1200
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from pydantic_settings.sources import JsonConfigSettingsSource

from video_enhancer import __version__
from video_enhancer.utils.constants import (
    DEFAULT_AUDIO_BITRATE,
    DEFAULT_AUDIO_CHANNELS,
    DEFAULT_AUDIO_SAMPLE_RATE,
    DEFAULT_GOP_SECONDS,
    DEFAULT_INITIAL_PERCENT,
    DEFAULT_PROCESSED_DIR,
    DEFAULT_PROGRESS_INTERVAL,
    DEFAULT_RECENCY_WINDOW,
    DEFAULT_RETENTION_INTERVAL_MINUTES,
    DEFAULT_RETENTION_MAX_AGE_MINUTES,
    DEFAULT_STALE_AFTER,
    DEFAULT_TEMP_DIR,
    DEFAULT_UPLOADS_DIR,
    ENCODE_TIMEOUT,
    MAX_ENCODE_TIMEOUT,
    MAX_OUTPUT_FPS,
    MIN_ENCODE_TIMEOUT,
    MIN_OUTPUT_SIZE,
    PROBE_TIMEOUT,
)

# Default paths
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "video_enhancer"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"

# Singleton state (module-level to avoid Pydantic serialization issues)
_config_lock: threading.Lock = threading.Lock()
_config_instance: Config | None = None
_config_path_cache: Path | None = None


class _JsonFileSettingsSource(JsonConfigSettingsSource):
    """Custom JSON settings source that loads from a specified file."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        json_file: Path | None = None,
    ) -> None:
        self._json_file = json_file
        super().__init__(settings_cls, json_file=json_file)


class PathsConfig(BaseModel):
    """Directory settings for job artifacts.

    Attributes:
        uploads: Directory holding submitted input files.
        processed: Directory receiving encoder outputs.
        temp: Directory holding progress records.
    """

    uploads: Path = DEFAULT_UPLOADS_DIR
    processed: Path = DEFAULT_PROCESSED_DIR
    temp: Path = DEFAULT_TEMP_DIR

    @field_validator("uploads", "processed", "temp", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        """Expand user home directory in paths.

        Args:
            v: Path value (string or Path).

        Returns:
            Path with ~ expanded to user home directory.
        """
        if isinstance(v, str):
            v = Path(v)
        return v.expanduser()

    def ensure(self) -> None:
        """Create all configured directories."""
        for directory in (self.uploads, self.processed, self.temp):
            directory.mkdir(parents=True, exist_ok=True)


class EncodingConfig(BaseModel):
    """Encoding defaults and limits.

    Attributes:
        codec: Default video codec when a submission names none.
        quality: Default quality tier.
        resolution: Default resolution mode.
        preset: Encoder speed preset.
        max_fps: Output frame rate ceiling.
        gop_seconds: Keyframe interval in seconds of output.
        audio_bitrate: Bitrate for re-encoded audio.
        audio_sample_rate: Sample rate for re-encoded audio.
        audio_channels: Channel count for re-encoded audio.
        timeout_seconds: Per-job time budget.
        progress_interval: Minimum seconds between progress writes.
        ffmpeg_path: Encoder executable.
    """

    codec: Literal["h264", "h265"] = "h264"
    quality: Literal["low", "medium", "high"] = "medium"
    resolution: Literal["auto", "720p", "1080p"] = "auto"
    preset: Literal[
        "ultrafast",
        "superfast",
        "veryfast",
        "faster",
        "fast",
        "medium",
        "slow",
        "slower",
        "veryslow",
    ] = "medium"
    max_fps: float = Field(default=MAX_OUTPUT_FPS, gt=0, le=120)
    gop_seconds: float = Field(default=DEFAULT_GOP_SECONDS, gt=0, le=10)
    audio_bitrate: str = Field(default=DEFAULT_AUDIO_BITRATE, pattern=r"^\d+k$")
    audio_sample_rate: int = Field(default=DEFAULT_AUDIO_SAMPLE_RATE, ge=8000, le=192000)
    audio_channels: int = Field(default=DEFAULT_AUDIO_CHANNELS, ge=1, le=8)
    timeout_seconds: int = Field(
        default=ENCODE_TIMEOUT, ge=MIN_ENCODE_TIMEOUT, le=MAX_ENCODE_TIMEOUT
    )
    progress_interval: float = Field(default=DEFAULT_PROGRESS_INTERVAL, ge=0)
    ffmpeg_path: str = "ffmpeg"


class ValidationConfig(BaseModel):
    """Output validation settings.

    Attributes:
        min_output_size: Smallest acceptable output in bytes.
        probe_timeout: Seconds allowed for one ffprobe call.
        ffprobe_path: Prober executable.
    """

    min_output_size: int = Field(default=MIN_OUTPUT_SIZE, ge=1)
    probe_timeout: float = Field(default=PROBE_TIMEOUT, gt=0)
    ffprobe_path: str = "ffprobe"


class StatusConfig(BaseModel):
    """Status resolution settings.

    Attributes:
        recency_window: Seconds within which a modified output counts as growing.
        stale_after: Seconds after which a non-terminal record is no longer trusted.
        initial_percent: Percent reported before any evidence exists.
    """

    recency_window: float = Field(default=DEFAULT_RECENCY_WINDOW, gt=0)
    stale_after: float = Field(default=DEFAULT_STALE_AFTER, gt=0)
    initial_percent: int = Field(default=DEFAULT_INITIAL_PERCENT, ge=0, le=15)


class RetentionConfig(BaseModel):
    """Periodic artifact sweeping settings.

    Attributes:
        enabled: Whether the periodic sweep runs.
        interval_minutes: Minutes between sweeps.
        max_age_minutes: Files older than this are deleted.
    """

    enabled: bool = True
    interval_minutes: int = Field(default=DEFAULT_RETENTION_INTERVAL_MINUTES, ge=1)
    max_age_minutes: int = Field(default=DEFAULT_RETENTION_MAX_AGE_MINUTES, ge=1)


class Config(BaseSettings):
    """Main configuration class for video_enhancer.

    Attributes:
        version: Configuration schema version.
        paths: Artifact directories.
        encoding: Encoding defaults and limits.
        validation: Output validation settings.
        status: Status resolution settings.
        retention: Periodic sweeping settings.

    Example:
        >>> config = Config.load()
        >>> print(config.encoding.codec)
        'h264'

        >>> # Environment override (VIDEO_ENHANCER_ENCODING__CODEC=h265)
        >>> config = Config.load(force_reload=True)
        >>> print(config.encoding.codec)
        'h265'
    """

    model_config = SettingsConfigDict(
        env_prefix="VIDEO_ENHANCER_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    version: str = Field(default_factory=lambda: __version__)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    status: StatusConfig = Field(default_factory=StatusConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources priority.

        Priority (highest to lowest):
        1. init_settings (direct arguments)
        2. env_settings (environment variables)
        3. JSON file settings
        4. Default values
        """
        _ = dotenv_settings
        _ = file_secret_settings

        json_source = _JsonFileSettingsSource(settings_cls, json_file=cls._find_config_file())

        return (
            init_settings,
            env_settings,
            json_source,
        )

    @classmethod
    def load(cls, *, force_reload: bool = False) -> Config:
        """Load the shared configuration instance.

        Args:
            force_reload: Force reload even if already loaded.

        Returns:
            Config: Loaded configuration instance.

        Raises:
            pydantic.ValidationError: If a source contains invalid values.
        """
        global _config_instance, _config_path_cache

        with _config_lock:
            if _config_instance is not None and not force_reload:
                return _config_instance

            instance = cls()
            _config_path_cache = cls._find_config_file() or DEFAULT_CONFIG_FILE

            _config_instance = instance
            return instance

    @classmethod
    def _find_config_file(cls) -> Path | None:
        """Find the configuration file to load.

        Returns:
            Path to config file, or None if no file exists.
        """
        if DEFAULT_CONFIG_FILE.exists():
            return DEFAULT_CONFIG_FILE
        return None

    def save(self, config_path: Path | None = None) -> Path:
        """Save configuration to file.

        Args:
            config_path: Optional path to save to. Defaults to loaded path.

        Returns:
            Path the configuration was written to.

        Raises:
            OSError: If file cannot be written.
        """
        save_path = config_path or _config_path_cache or DEFAULT_CONFIG_FILE
        save_path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self.model_dump(mode="json")

        with save_path.open("w", encoding="utf-8") as f:
            json.dump(config_dict, f, indent=2, ensure_ascii=False)
            f.write("\n")

        return save_path

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance.

        This is primarily useful for testing to ensure a clean state.
        """
        global _config_instance, _config_path_cache

        with _config_lock:
            _config_instance = None
            _config_path_cache = None

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the default user configuration file path."""
        return DEFAULT_CONFIG_FILE

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a JSON-compatible dictionary."""
        result: dict[str, Any] = self.model_dump(mode="json")
        return result


__all__ = [
    "Config",
    "PathsConfig",
    "EncodingConfig",
    "ValidationConfig",
    "StatusConfig",
    "RetentionConfig",
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_CONFIG_FILE",
]
