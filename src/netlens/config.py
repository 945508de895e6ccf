"""
Settings for NetLens runs.

Settings come from an optional YAML file, then environment overrides:

  - NETLENS_LOG_LEVEL    log level name (DEBUG, INFO, ...)
  - NETLENS_MAX_WORKERS  worker pool cap for batch parsing

Example file::

    log_level: INFO
    batch:
      max_workers: 4
    arbitration:
      classifier_lines: 500
      sample_lines: 30
    rules:
      cpu_high: 80
      memory_high: 80
    layout:
      width: 800
      height: 600
      iterations: 300
      seed: 0
      collapse_threshold: 3
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from .detect.anomaly import RuleThresholds
from .errors import ConfigError
from .graph.layout import ForceLayout
from .ingest.base import CONFIDENCE_LINES
from .ingest.batch import MAX_WORKERS
from .ingest.classifier import DEFAULT_MAX_LINES

_LOGGER = logging.getLogger(__name__)

_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass
class LayoutSettings:
    width: float = 800.0
    height: float = 600.0
    radius: float = 200.0
    iterations: int = 300
    seed: int = 0
    collapse_threshold: int = 3

    def force_layout(self) -> ForceLayout:
        return ForceLayout(
            width=self.width,
            height=self.height,
            radius=self.radius,
            iterations=self.iterations,
            seed=self.seed,
        )


@dataclass
class Settings:
    log_level: str = "INFO"
    max_workers: int = MAX_WORKERS
    classifier_lines: int = DEFAULT_MAX_LINES
    sample_lines: int = CONFIDENCE_LINES
    rules: RuleThresholds = field(default_factory=RuleThresholds)
    layout: LayoutSettings = field(default_factory=LayoutSettings)


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"{name} must be a mapping")
    return value


def _positive_int(value, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer") from exc
    if number < 1:
        raise ConfigError(f"{name} must be at least 1")
    return number


def _log_level(value, name: str) -> str:
    level = str(value).strip().upper()
    if level not in _LEVELS:
        raise ConfigError(f"{name} must be one of {', '.join(sorted(_LEVELS))}")
    return level


def _apply_numbers(target, values: dict, section: str) -> None:
    """Copy known numeric keys from ``values`` onto a dataclass instance."""
    known = {f.name: f for f in fields(target)}
    for key, value in values.items():
        if key not in known:
            raise ConfigError(f"unknown setting {section}.{key}")
        current = getattr(target, key)
        try:
            converted = type(current)(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{section}.{key} must be a number") from exc
        if converted < 0:
            raise ConfigError(f"{section}.{key} must not be negative")
        setattr(target, key, converted)


def _load_yaml(path: Path) -> dict:
    if not path.is_file():
        raise ConfigError(f"config file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to read YAML config: {path}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("YAML config root must be a mapping")
    return raw


def load_settings(path: Optional[str | Path] = None) -> Settings:
    """Load settings from ``path`` (if given) and apply environment overrides."""
    settings = Settings()
    if path is not None:
        raw = _load_yaml(Path(path))
        if "log_level" in raw:
            settings.log_level = _log_level(raw["log_level"], "log_level")

        batch = _section(raw, "batch")
        if "max_workers" in batch:
            settings.max_workers = _positive_int(batch["max_workers"], "batch.max_workers")

        arbitration = _section(raw, "arbitration")
        for key in ("classifier_lines", "sample_lines"):
            if key in arbitration:
                setattr(settings, key, _positive_int(arbitration[key], f"arbitration.{key}"))

        _apply_numbers(settings.rules, _section(raw, "rules"), "rules")
        _apply_numbers(settings.layout, _section(raw, "layout"), "layout")
        _LOGGER.debug("Loaded settings from %s", path)

    env_level = os.getenv("NETLENS_LOG_LEVEL")
    if env_level:
        settings.log_level = _log_level(env_level, "NETLENS_LOG_LEVEL")
    env_workers = os.getenv("NETLENS_MAX_WORKERS")
    if env_workers:
        settings.max_workers = _positive_int(env_workers, "NETLENS_MAX_WORKERS")
    return settings
