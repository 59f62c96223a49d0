"""Configuration management for the relay server."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from peerrelay.errors import ConfigError

logger = logging.getLogger(__name__)

# Recommended ratio between staleness timeout and keep-alive interval.
RECOMMENDED_TIMEOUT_RATIO = 3.0


@dataclass
class HeartbeatConfig:
    """Keep-alive and eviction timing (seconds)."""

    interval: float = 5.0  # Expected client keep-alive interval
    timeout: float = 15.0  # Evict if no keep-alive for this long
    sweep_interval: float | None = None  # Defaults to interval

    def __post_init__(self):
        if self.interval <= 0:
            raise ConfigError(f"heartbeat interval must be positive, got {self.interval}")
        if self.timeout <= self.interval:
            raise ConfigError(
                f"heartbeat timeout ({self.timeout}s) must be greater than "
                f"interval ({self.interval}s)"
            )
        if self.timeout < self.interval * RECOMMENDED_TIMEOUT_RATIO:
            logger.warning(
                f"heartbeat timeout ({self.timeout}s) is less than "
                f"{RECOMMENDED_TIMEOUT_RATIO:.0f}x interval ({self.interval}s), "
                "peers may be evicted on jitter"
            )
        if self.sweep_interval is None:
            self.sweep_interval = self.interval
        elif self.sweep_interval <= 0:
            raise ConfigError(
                f"sweep interval must be positive, got {self.sweep_interval}"
            )


@dataclass
class Config:
    """Relay server configuration."""

    port: int = 9000
    bind_address: str = "0.0.0.0"
    path: str = "/peerjs"
    key: str = "peerjs"
    allow_discovery: bool = False
    send_timeout: float = 5.0  # seconds
    max_id_attempts: int = 100
    log_level: str = "INFO"
    log_file: str | None = None
    heartbeat: HeartbeatConfig = field(default_factory=HeartbeatConfig)

    def __post_init__(self):
        if not self.path.startswith("/"):
            self.path = "/" + self.path
        if len(self.path) > 1:
            self.path = self.path.rstrip("/")
        if self.max_id_attempts < 1:
            raise ConfigError(
                f"max_id_attempts must be at least 1, got {self.max_id_attempts}"
            )


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "peerrelay" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return None


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _parse_ms(name: str, value: str) -> float:
    try:
        return int(value) / 1000.0
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer number of milliseconds") from e


def _apply_environment(data: dict[str, Any], environ: Mapping[str, str]) -> None:
    """Overlay environment variables onto parsed file data (in place)."""
    if "PORT" in environ:
        try:
            data["port"] = int(environ["PORT"])
        except ValueError as e:
            raise ConfigError(f"PORT must be an integer, got {environ['PORT']!r}") from e
    if "BIND_ADDRESS" in environ:
        data["bind_address"] = environ["BIND_ADDRESS"]
    if "PATH_PREFIX" in environ:
        data["path"] = environ["PATH_PREFIX"]
    if "API_KEY" in environ:
        data["key"] = environ["API_KEY"]
    if "ALLOW_DISCOVERY" in environ:
        data["allow_discovery"] = _parse_bool(environ["ALLOW_DISCOVERY"])
    if "LOG_LEVEL" in environ:
        data["log_level"] = environ["LOG_LEVEL"]

    heartbeat = dict(data.get("heartbeat") or {})
    if "HEARTBEAT_INTERVAL_MS" in environ:
        heartbeat["interval"] = _parse_ms(
            "HEARTBEAT_INTERVAL_MS", environ["HEARTBEAT_INTERVAL_MS"]
        )
    if "HEARTBEAT_TIMEOUT_MS" in environ:
        heartbeat["timeout"] = _parse_ms(
            "HEARTBEAT_TIMEOUT_MS", environ["HEARTBEAT_TIMEOUT_MS"]
        )
    if heartbeat:
        data["heartbeat"] = heartbeat


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from file, then apply environment overrides.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.
        environ: Environment mapping. If None, uses os.environ.

    Returns:
        Config object with values from file/environment or defaults.

    Raises:
        ConfigError: If a value is out of range or cannot be parsed.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader

    data = reader(config_path) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    data = dict(data)
    if data.get("heartbeat") is None:
        data["heartbeat"] = {}
    elif not isinstance(data["heartbeat"], dict):
        raise ConfigError(f"heartbeat section in {config_path} must be a mapping")

    _apply_environment(data, os.environ if environ is None else environ)

    # Parse heartbeat config section
    heartbeat_data = data.get("heartbeat", {})
    heartbeat_config = HeartbeatConfig(
        interval=heartbeat_data.get("interval", HeartbeatConfig.interval),
        timeout=heartbeat_data.get("timeout", HeartbeatConfig.timeout),
        sweep_interval=heartbeat_data.get("sweep_interval"),
    )

    return Config(
        port=data.get("port", Config.port),
        bind_address=data.get("bind_address", Config.bind_address),
        path=data.get("path", Config.path),
        key=data.get("key", Config.key),
        allow_discovery=data.get("allow_discovery", Config.allow_discovery),
        send_timeout=data.get("send_timeout", Config.send_timeout),
        max_id_attempts=data.get("max_id_attempts", Config.max_id_attempts),
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        heartbeat=heartbeat_config,
    )
