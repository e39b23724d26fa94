"""
Configuration
-------------
Loads config.yaml into typed sections.
Environment variables (MEDIAKEEP_<SECTION>_<KEY>) override file values.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar
import logging
import os

import yaml

from audio.capture_stream import CaptureConfig
from audio.recording_session import RecordingConfig

ENV_PREFIX = "MEDIAKEEP"

T = TypeVar("T")


@dataclass
class PlaybackConfig:
    """Configuration for audio/video playback."""
    max_audio_duration: float = 5.0  # Auto-stop for URL sources, seconds
    start_timeout: float = 2.0  # Wait for a buffering output to report playing
    http_timeout: float = 30.0
    output_device: Optional[Any] = None


@dataclass
class ServerConfig:
    """Configuration for the HTTP control surface."""
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class LoggingConfig:
    level: str = "INFO"
    log_dir: str = "logs"
    console: bool = True
    file: bool = True


@dataclass
class MediaConfig:
    """Complete configuration of the media engine."""
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigManager:
    """
    Centralized configuration management.
    Loads configuration from YAML with environment variable overrides.
    """

    def __init__(self, config_path: str = "config.yaml"):
        self._config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._logger = logging.getLogger("mediakeep.infra.config")

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file."""
        if self._config_path.exists():
            with open(self._config_path, 'r') as f:
                self._config = yaml.safe_load(f) or {}
            self._logger.info(f"Loaded config from {self._config_path}")
        else:
            self._config = {}
            self._logger.warning(f"Config file not found: {self._config_path}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.
        Supports dot notation: 'section.key'
        Environment variables override file config.
        """
        env_key = f"{ENV_PREFIX}_{key.upper().replace('.', '_')}"
        env_value = os.getenv(env_key)
        if env_value is not None:
            return env_value

        value = self._config
        for part in key.split('.'):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get an entire configuration section."""
        return self._config.get(section, {}) or {}

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()


def _coerce(value: Any, default: Any) -> Any:
    """Convert string overrides to the type of the field default."""
    if not isinstance(value, str) or default is None or isinstance(default, str):
        return value
    if isinstance(default, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value


def _build_section(cls: Type[T], manager: ConfigManager, section: str) -> T:
    defaults = cls()
    values = {}
    for f in fields(cls):
        value = manager.get(f"{section}.{f.name}")
        if value is not None:
            values[f.name] = _coerce(value, getattr(defaults, f.name))
    return cls(**values)


def load_config(config_path: str = "config.yaml") -> MediaConfig:
    """Load the media configuration; missing keys keep their defaults."""
    manager = ConfigManager(config_path)
    return MediaConfig(
        capture=_build_section(CaptureConfig, manager, "capture"),
        recording=_build_section(RecordingConfig, manager, "recording"),
        playback=_build_section(PlaybackConfig, manager, "playback"),
        server=_build_section(ServerConfig, manager, "server"),
        logging=_build_section(LoggingConfig, manager, "logging"),
    )
