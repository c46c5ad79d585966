"""Configuration utilities for the release notes dashboard."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List

from release_notes_dashboard.noise import DEFAULT_ACKNOWLEDGEMENTS, DEFAULT_MIN_LENGTH, NoisePolicy
from release_notes_dashboard.records import OverrideTable, load_overrides


CONFIG_ENV_VAR = "RELEASE_NOTES_DASHBOARD_CONFIG"
SHEET_URL_ENV_VAR = "RELEASE_NOTES_SHEET_URL"
DEFAULT_CONFIG_PATH = (
    Path.home() / ".config" / "release-notes-dashboard" / "config.json"
)
DEFAULT_STAGES = ["Announced", "Beta", "Generally Available"]


def default_sheet_url() -> str:
    """Return the sheet URL from the environment, or an empty string."""

    return os.getenv(SHEET_URL_ENV_VAR, "").strip()


@dataclass
class DashboardConfig:
    """Serializable configuration for the dashboard."""

    sheet_url: str = field(default_factory=default_sheet_url)
    refresh_interval: int = 60
    request_timeout: float = 15.0
    min_message_length: int = DEFAULT_MIN_LENGTH
    acknowledgements: List[str] = field(default_factory=lambda: list(DEFAULT_ACKNOWLEDGEMENTS))
    overrides_path: str | None = None
    stages: List[str] = field(default_factory=lambda: list(DEFAULT_STAGES))

    def to_dict(self) -> dict:
        """Return the config as a JSON-serializable dictionary."""

        data = asdict(self)
        if self.overrides_path:
            data["overrides_path"] = str(Path(self.overrides_path).expanduser())
        return data

    def noise_policy(self) -> NoisePolicy:
        return NoisePolicy(
            min_length=self.min_message_length,
            acknowledgements=list(self.acknowledgements),
        )

    def load_overrides(self) -> OverrideTable:
        return load_overrides(self.overrides_path)


def config_path() -> Path:
    """Return the filesystem path where config is stored."""

    override = os.getenv(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()

    return DEFAULT_CONFIG_PATH


def _positive_int(value, fallback: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback


def _positive_float(value, fallback: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback


def load_config() -> DashboardConfig:
    """Load configuration from disk, falling back to defaults."""

    path = config_path()
    if not path.exists():
        return DashboardConfig()

    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError:
        # Malformed config; fall back to defaults but keep original file for inspection.
        return DashboardConfig()

    if not isinstance(data, dict):
        return DashboardConfig()

    config = DashboardConfig()
    # The environment wins over the file so deployments can repoint the sheet.
    config.sheet_url = default_sheet_url() or str(data.get("sheet_url") or "")
    config.refresh_interval = _positive_int(data.get("refresh_interval"), config.refresh_interval)
    config.request_timeout = _positive_float(data.get("request_timeout"), config.request_timeout)
    config.min_message_length = _positive_int(
        data.get("min_message_length"), config.min_message_length
    )
    if isinstance(data.get("acknowledgements"), list):
        config.acknowledgements = [str(phrase) for phrase in data["acknowledgements"]]
    config.overrides_path = data.get("overrides_path") or None
    if isinstance(data.get("stages"), list) and data["stages"]:
        config.stages = [str(stage) for stage in data["stages"]]
    return config


def save_config(config: DashboardConfig) -> None:
    """Persist configuration to disk."""

    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2))
