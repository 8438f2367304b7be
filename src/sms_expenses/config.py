"""
Configuration management (SSOT).

This module defines ALL configuration for the SMS expense detector.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- The message source is chosen here, never detected inside the pipeline
- Secrets (gateway token) may come from the environment instead of the file
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

SOURCE_KINDS = ("fixture", "json_export", "gateway")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class SourceConfig:
    """Where SMS messages come from.

    kind:
    - fixture: built-in sample alerts (demos, tests)
    - json_export: exported inbox file at export_path
    - gateway: HTTP SMS gateway app on the phone at gateway_url
    """

    kind: str = "fixture"
    export_path: Path | None = None
    gateway_url: str | None = None
    gateway_token: str | None = None
    # Request timeout (seconds)
    timeout_seconds: int = 15
    # Live listener poll interval for file and gateway sources (seconds)
    poll_interval_seconds: float = 30.0


@dataclass
class ScanConfig:
    """Backfill settings."""

    # Trailing window scanned by a backfill (days)
    window_days: int = 30
    # Upper bound on messages read per backfill
    max_messages: int = 500


@dataclass
class NotificationConfig:
    """Where candidateDetected events go. No webhook: logged only."""

    webhook_url: str | None = None
    timeout_seconds: int = 10


@dataclass
class Config:
    """Application configuration (SSOT)."""

    source: SourceConfig = field(default_factory=SourceConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/sms_expenses.db"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if self.source.kind not in SOURCE_KINDS:
            errors.append(
                f"source.kind must be one of {', '.join(SOURCE_KINDS)} (got {self.source.kind!r})"
            )
        if self.source.kind == "json_export" and not self.source.export_path:
            errors.append("source.export_path is required for json_export source")
        if self.source.kind == "gateway" and not self.source.gateway_url:
            errors.append("source.gateway_url is required for gateway source")
        if self.source.poll_interval_seconds <= 0:
            errors.append("source.poll_interval_seconds must be positive")

        if self.scan.window_days < 1:
            errors.append("scan.window_days must be at least 1")
        if self.scan.max_messages < 1:
            errors.append("scan.max_messages must be at least 1")

        return errors


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "")
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigValidationError(f"{name} must be an integer (got {value!r})")


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    A missing file yields the defaults. Environment variables can override
    config values:
    - SMS_SOURCE (fixture/json_export/gateway)
    - SMS_EXPORT_PATH
    - SMS_GATEWAY_URL
    - SMS_GATEWAY_TOKEN
    - SMS_SCAN_WINDOW_DAYS
    - SMS_MAX_MESSAGES
    - EXPENSE_WEBHOOK_URL
    - EXPENSE_STATE_DB
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Source config
    source_data = data.get("source", {}) or {}
    export_path = os.environ.get("SMS_EXPORT_PATH", source_data.get("export_path"))
    source = SourceConfig(
        kind=os.environ.get("SMS_SOURCE", source_data.get("kind", "fixture")),
        export_path=Path(export_path) if export_path else None,
        gateway_url=os.environ.get("SMS_GATEWAY_URL", source_data.get("gateway_url")),
        gateway_token=os.environ.get("SMS_GATEWAY_TOKEN", source_data.get("gateway_token")),
        timeout_seconds=source_data.get("timeout_seconds", 15),
        poll_interval_seconds=float(source_data.get("poll_interval_seconds", 30.0)),
    )

    # Scan config
    scan_data = data.get("scan", {}) or {}
    scan = ScanConfig(
        window_days=_env_int("SMS_SCAN_WINDOW_DAYS", scan_data.get("window_days", 30)),
        max_messages=_env_int("SMS_MAX_MESSAGES", scan_data.get("max_messages", 500)),
    )

    # Notification config
    notify_data = data.get("notifications", {}) or {}
    notifications = NotificationConfig(
        webhook_url=os.environ.get("EXPENSE_WEBHOOK_URL", notify_data.get("webhook_url")),
        timeout_seconds=notify_data.get("timeout_seconds", 10),
    )

    # State DB
    state_db = os.environ.get(
        "EXPENSE_STATE_DB", data.get("state_db_path", "data/sms_expenses.db")
    )

    return Config(
        source=source,
        scan=scan,
        notifications=notifications,
        state_db_path=Path(state_db),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# SMS Expense Detector Configuration
#
# Message source (pick one):
# - fixture: built-in sample bank alerts, no phone needed
# - json_export: exported inbox JSON ([{address, body, date}, ...])
# - gateway: SMS gateway app on the phone, polled over HTTP

source:
  kind: "fixture"
  export_path: null                 # e.g. "exports/sms_inbox.json"
  gateway_url: null                 # e.g. "http://192.168.1.50:8080"
  gateway_token: null               # Prefer SMS_GATEWAY_TOKEN in the environment
  timeout_seconds: 15
  poll_interval_seconds: 30         # Live listener poll interval

# Backfill settings
scan:
  window_days: 30                   # Trailing window scanned by `scan`
  max_messages: 500                 # Messages read per scan

# candidateDetected notifications
notifications:
  webhook_url: null                 # POST target; unset = log only
  timeout_seconds: 10

# State database path
state_db_path: "data/sms_expenses.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
