"""Load, validate, and hot-reload the Dosely behaviour configuration.

The config lives in ``app_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_app_config()`` to re-read from
disk after an update without restarting.

Usage::

    from dosely.config_loader import get_app_config

    config = get_app_config()
    config.reminders.horizon_count   # 10
    config.weight_sync.window_days   # 90
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger("dosely.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "app_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class ReminderConfig:
    """Medication and weight reminder settings."""

    horizon_count: int
    dose_title: str
    dose_body: str
    weight_title: str
    weight_body: str

    def dose_body_for(self, name: str, dose_mg: float) -> str:
        return self.dose_body.format(name=name, dose_mg=dose_mg)


@dataclass
class WeightSyncConfig:
    """Health store → backend weight import settings."""

    window_days: int
    dedupe: bool


@dataclass
class DisplayConfig:
    """Formatting of weight values shown to the user."""

    sentinel: str = "--"
    decimals: int = 1


@dataclass
class AppConfig:
    """Complete, validated behaviour configuration.

    Attributes:
        version:     Config schema version string.
        reminders:   Reminder scheduling settings.
        weight_sync: Weight reconciliation settings.
        display:     Display formatting settings.
    """

    version: str
    reminders: ReminderConfig
    weight_sync: WeightSyncConfig
    display: DisplayConfig
    _raw: dict = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when app_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"App config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> AppConfig:
    """Validate the raw YAML dict and construct an AppConfig.

    Applies defaults for optional fields and collects every problem before
    raising, so one run reports all of them.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    def _int(section: dict, key: str, default: int, where: str, minimum: int) -> int:
        value = section.get(key, default)
        try:
            number = int(value)
        except (TypeError, ValueError):
            errors.append(f"{where}.{key} must be an integer, got {value!r}")
            return default
        if number < minimum:
            errors.append(f"{where}.{key} = {number} must be >= {minimum}")
        return number

    version = str(raw.get("version", "1.0"))

    # ── Reminders ──
    rem_raw = raw.get("reminders") or {}
    dose_raw = rem_raw.get("dose") or {}
    weight_raw = rem_raw.get("weight") or {}
    dose_body = str(dose_raw.get("body", "{name} - {dose_mg}mg"))
    try:
        dose_body.format(name="", dose_mg=0)
    except (KeyError, IndexError, ValueError) as exc:
        errors.append(f"reminders.dose.body has an unknown placeholder: {exc}")
    reminders = ReminderConfig(
        horizon_count=_int(rem_raw, "horizon_count", 10, "reminders", 1),
        dose_title=str(dose_raw.get("title", "Time for your medication")),
        dose_body=dose_body,
        weight_title=str(weight_raw.get("title", "Don't forget to log your weight!")),
        weight_body=str(weight_raw.get("body", "Track your progress today")),
    )

    # ── Weight sync ──
    ws_raw = raw.get("weight_sync") or {}
    weight_sync = WeightSyncConfig(
        window_days=_int(ws_raw, "window_days", 90, "weight_sync", 1),
        dedupe=bool(ws_raw.get("dedupe", True)),
    )

    # ── Display ──
    disp_raw = raw.get("display") or {}
    display = DisplayConfig(
        sentinel=str(disp_raw.get("sentinel", "--")),
        decimals=_int(disp_raw, "decimals", 1, "display", 0),
    )

    if errors:
        raise ConfigValidationError(
            f"app_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return AppConfig(
        version=version,
        reminders=reminders,
        weight_sync=weight_sync,
        display=display,
        _raw=raw,
    )


def load_app_config(path: Path | None = None) -> AppConfig:
    """Load and validate the app config from disk.

    Args:
        path: Override path to YAML. Uses the bundled app_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded app config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: AppConfig | None = None
_config_lock = threading.Lock()


def get_app_config() -> AppConfig:
    """Return the cached AppConfig, loading it on first call.

    Thread-safe.  Use ``reload_app_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_app_config()
    return _config


def reload_app_config(path: Path | None = None) -> AppConfig:
    """Reload the app config from disk and replace the cached instance.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_app_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded app config: %s → %s", old_version, new_config.version)
    return new_config
