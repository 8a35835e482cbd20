"""
Configuration module for Stream Capture.
Loads settings from a YAML file and provides typed configuration.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .models import MIN_DEDUP_WINDOW

VARIANT_STRATEGIES = ("last", "bandwidth")


@dataclass
class CaptureConfig:
    """Capture pipeline tuning."""
    max_concurrent_fetches: int = 16   # Simultaneous segment downloads
    variant_selection: str = "last"    # "last" or "bandwidth"
    dedup_window: int = 4096           # Segment keys remembered per session (at least 64)
    request_timeout: float = 30.0      # Seconds per HTTP request
    poll_retry_delay: float = 3.0      # Seconds between failed playlist polls
    max_poll_failures: int = 10        # Consecutive failures tolerated before offline
    warmup_delay: float = 4.0          # Reassembler start delay
    idle_delay: float = 1.0            # Reassembler wait when caught up
    max_missing_retries: int = 5       # Backoff steps before a segment is skipped


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    file: str = "./logs/capture.log"
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class Config:
    """Main configuration container."""
    channel: str
    interval: int = 1                  # Minutes between online checks while offline
    proxy_url: Optional[str] = None
    output_dir: str = "."
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def channel_dir(self) -> Path:
        """Directory the channel's recordings land in."""
        return Path(self.output_dir) / self.channel


def as_float(value: Any, default: float) -> float:
    """Parse float from YAML value with safe fallbacks."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", "."))
        except ValueError:
            return default
    return default


def as_int(value: Any, default: int) -> int:
    """Parse int from YAML value with safe fallbacks."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return int(float(text.replace(",", ".")))
        except ValueError:
            return default
    return default


def build_config(data: Dict[str, Any]) -> Config:
    """
    Build a Config from an already-parsed mapping.

    Raises:
        ValueError: If the channel is missing.
    """
    channel = str(data.get('channel') or '').strip()
    if not channel:
        raise ValueError("Missing required field: channel")

    capture_data = data.get('capture') or {}
    defaults = CaptureConfig()

    variant_selection = str(capture_data.get('variant_selection', defaults.variant_selection)).lower()
    if variant_selection not in VARIANT_STRATEGIES:
        variant_selection = defaults.variant_selection

    capture_config = CaptureConfig(
        max_concurrent_fetches=max(1, as_int(capture_data.get('max_concurrent_fetches'), defaults.max_concurrent_fetches)),
        variant_selection=variant_selection,
        dedup_window=max(MIN_DEDUP_WINDOW, as_int(capture_data.get('dedup_window'), defaults.dedup_window)),
        request_timeout=max(1.0, as_float(capture_data.get('request_timeout'), defaults.request_timeout)),
        poll_retry_delay=max(0.0, as_float(capture_data.get('poll_retry_delay'), defaults.poll_retry_delay)),
        max_poll_failures=max(0, as_int(capture_data.get('max_poll_failures'), defaults.max_poll_failures)),
        warmup_delay=max(0.0, as_float(capture_data.get('warmup_delay'), defaults.warmup_delay)),
        idle_delay=max(0.0, as_float(capture_data.get('idle_delay'), defaults.idle_delay)),
        max_missing_retries=max(0, as_int(capture_data.get('max_missing_retries'), defaults.max_missing_retries)),
    )

    logging_data = data.get('logging') or {}
    logging_config = LoggingConfig(
        level=str(logging_data.get('level', 'INFO')),
        file=logging_data.get('file', './logs/capture.log') or '',
        max_size_mb=as_int(logging_data.get('max_size_mb'), 10),
        backup_count=as_int(logging_data.get('backup_count'), 5),
    )

    return Config(
        channel=channel,
        interval=max(1, as_int(data.get('interval'), 1)),
        proxy_url=data.get('proxy_url') or None,
        output_dir=str(data.get('output_dir') or '.'),
        capture=capture_config,
        logging=logging_config,
    )


def read_config_file(config_path: str = "config.yaml") -> Dict[str, Any]:
    """
    Read the raw YAML mapping.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the file isn't a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {path}\n"
            f"Create one from config.example.yaml or pass the channel with -u."
        )

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Configuration file must contain a mapping")
    return data


def load_config(config_path: str = "config.yaml", overrides: Optional[Dict[str, Any]] = None) -> Config:
    """
    Load configuration from YAML, with optional overrides on top.

    Args:
        config_path: Path to YAML configuration file.
        overrides: Top-level keys (e.g. from the command line) that win over the file.

    Returns:
        Config object with all settings.
    """
    data = read_config_file(config_path)
    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value
    return build_config(data)


def create_example_config(path: str = "config.example.yaml") -> None:
    """Create an example configuration file."""
    example = """# Stream Capture Configuration

channel: someone           # Channel to watch
interval: 1                # Minutes between online checks
proxy_url: ""              # Optional, e.g. http://127.0.0.1:8080
output_dir: .              # Recordings go to {output_dir}/{channel}/

capture:
  max_concurrent_fetches: 16
  variant_selection: last  # last | bandwidth
  dedup_window: 4096
  request_timeout: 30
  poll_retry_delay: 3
  max_poll_failures: 10
  warmup_delay: 4
  idle_delay: 1
  max_missing_retries: 5

logging:
  level: INFO  # DEBUG, INFO, WARNING, ERROR
  file: ./logs/capture.log
  max_size_mb: 10
  backup_count: 5
"""
    with open(path, 'w', encoding='utf-8') as f:
        f.write(example)


if __name__ == '__main__':
    create_example_config()
    print("Created config.example.yaml")
