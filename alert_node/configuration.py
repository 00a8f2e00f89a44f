"""Configuration loading and dataclasses for the alert node."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from .cadence import CadenceConfig, ConfigInvalid

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class OscConfig:
    host: str
    port: int


@dataclass(frozen=True)
class EngineSettings:
    poll_interval_s: float
    watchdog_s: float
    auto_activate: bool = False
    config_reload: bool = True


@dataclass(frozen=True)
class AlertSinkConfig:
    port: str = ""
    channel: int = 1
    note: int = 76
    velocity: int = 110
    program: Optional[int] = None


@dataclass(frozen=True)
class LoggingConfig:
    level: str


@dataclass(frozen=True)
class AppConfig:
    osc: OscConfig
    engine: EngineSettings
    cadence: CadenceConfig
    alert: AlertSinkConfig
    logging: LoggingConfig


def load_config(path: Path) -> AppConfig:
    """Load configuration from a YAML file.

    Raises ``ConfigInvalid`` when the cadence block is out of range or
    carries keys the engine does not use.
    """
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    engine_cfg = raw.get("engine", {})
    poll_interval_s = float(engine_cfg.get("poll_interval_s", 0.5))
    if poll_interval_s <= 0:
        raise ConfigInvalid("engine.poll_interval_s must be greater than zero")

    return AppConfig(
        osc=OscConfig(host=str(raw["osc"]["host"]), port=int(raw["osc"]["port"])),
        engine=EngineSettings(
            poll_interval_s=poll_interval_s,
            watchdog_s=float(engine_cfg.get("watchdog_s", 3.0)),
            auto_activate=bool(engine_cfg.get("auto_activate", False)),
            config_reload=bool(engine_cfg.get("config_reload", True)),
        ),
        cadence=parse_cadence(raw.get("cadence", {})),
        alert=_parse_alert(raw.get("alert", {})),
        logging=LoggingConfig(level=str(raw.get("logging", {}).get("level", "INFO"))),
    )


def parse_cadence(raw: Any) -> CadenceConfig:
    if not isinstance(raw, dict):
        raise ConfigInvalid("cadence section must be a mapping")
    unknown = sorted(set(raw) - {f.name for f in fields(CadenceConfig)})
    if unknown:
        raise ConfigInvalid(f"cadence section has unknown keys: {', '.join(unknown)}")
    defaults = CadenceConfig()
    try:
        return CadenceConfig(
            consecutive_window_ms=int(
                raw.get("consecutive_window_ms", defaults.consecutive_window_ms)
            ),
            trigger_threshold=int(raw.get("trigger_threshold", defaults.trigger_threshold)),
            dot_threshold_ms=int(raw.get("dot_threshold_ms", defaults.dot_threshold_ms)),
            alert_auto_stop_ms=int(raw.get("alert_auto_stop_ms", defaults.alert_auto_stop_ms)),
            log_capacity=int(raw.get("log_capacity", defaults.log_capacity)),
        )
    except ConfigInvalid:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigInvalid(f"cadence section has a non-numeric value: {exc}") from exc


def _parse_alert(raw: Any) -> AlertSinkConfig:
    if not isinstance(raw, dict):
        raw = {}
    program = raw.get("program")
    return AlertSinkConfig(
        port=str(raw.get("port") or ""),
        channel=int(raw.get("channel", 1)),
        note=int(raw.get("note", 76)),
        velocity=int(raw.get("velocity", 110)),
        program=int(program) if program is not None else None,
    )


def default_config_path() -> Path:
    return Path(__file__).resolve().parent / "config.yaml"


def load_default_config() -> AppConfig:
    """Load the default config.yaml shipped with the package."""
    return load_config(default_config_path())


class ConfigWatcher:
    """Re-reads the cadence section whenever the YAML file changes on disk.

    An invalid file is logged and skipped so the previous configuration
    stays in effect.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._mtime = self._stat()

    def _stat(self) -> Optional[float]:
        try:
            return self._path.stat().st_mtime
        except OSError:
            return None

    def poll(self) -> Optional[CadenceConfig]:
        """Return a new ``CadenceConfig`` if the file changed and is valid."""
        mtime = self._stat()
        if mtime is None or mtime == self._mtime:
            return None
        self._mtime = mtime
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = yaml.safe_load(handle) or {}
            return parse_cadence(raw.get("cadence", {}))
        except (ConfigInvalid, yaml.YAMLError, OSError) as exc:
            LOGGER.warning("Ignoring invalid configuration in %s: %s", self._path, exc)
            return None


__all__ = [
    "AlertSinkConfig",
    "AppConfig",
    "ConfigInvalid",
    "ConfigWatcher",
    "EngineSettings",
    "LoggingConfig",
    "OscConfig",
    "default_config_path",
    "load_config",
    "load_default_config",
    "parse_cadence",
]
