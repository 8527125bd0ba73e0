"""icsfeed_lite.config_loader

Configuration for the feed expansion engine.

- Reads YAML (PyYAML ``safe_load``) or JSON, chosen by file suffix.
- Environment variables prefixed ``ICSFEED_`` override file values.
- Exposes a typed dataclass ``Config`` and a ``load_config()`` helper.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "ICSFEED_"


@dataclass
class Config:
    """Typed configuration for icsfeed_lite.

    Fields:
        window_past_days: days before today covered by the default window
        window_future_days: days after today covered by the default window
        preview_past_days / preview_future_days: window used by preview_feed
        preview_limit: maximum events returned by preview_feed
        max_occurrences_per_rule: hard cap on candidates per recurring series
        max_title_length: titles are truncated to this many characters
        default_event_duration_minutes: end time for timed events without DTEND/DURATION
        default_timezone: zone for floating times when the feed declares none
        worker_concurrency: feeds expanded at once by FeedExpansionPool
        feed_timeout_seconds: per-feed timeout in FeedExpansionPool
        log_level: logging level name
    """

    window_past_days: int = 30
    window_future_days: int = 366
    preview_past_days: int = 30
    preview_future_days: int = 180
    preview_limit: int = 20
    max_occurrences_per_rule: int = 5000
    max_title_length: int = 200
    default_event_duration_minutes: int = 60
    default_timezone: str | None = None
    worker_concurrency: int = 4
    feed_timeout_seconds: float = 10.0
    log_level: str = "INFO"

    @property
    def default_event_duration(self) -> timedelta:
        return timedelta(minutes=self.default_event_duration_minutes)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced, bad values fall back to defaults with a
        warning, and values below their minimum are raised to it.
        """
        if data is None:
            data = {}
        defaults = cls()

        def _coerce_int(key: str, minimum: int) -> int:
            default = getattr(defaults, key)
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < minimum:
                logger.warning("Config %s=%d below minimum; coercing to %d", key, value, minimum)
                return minimum
            return value

        timeout_raw = data.get("feed_timeout_seconds", defaults.feed_timeout_seconds)
        try:
            feed_timeout = float(timeout_raw)
        except (TypeError, ValueError):
            logger.warning("Config feed_timeout_seconds=%r is not a number; using default", timeout_raw)
            feed_timeout = defaults.feed_timeout_seconds
        if feed_timeout <= 0:
            logger.warning("Config feed_timeout_seconds=%r must be positive; using default", timeout_raw)
            feed_timeout = defaults.feed_timeout_seconds

        default_timezone = data.get("default_timezone")
        log_level = data.get("log_level", defaults.log_level)

        return cls(
            window_past_days=_coerce_int("window_past_days", 0),
            window_future_days=_coerce_int("window_future_days", 0),
            preview_past_days=_coerce_int("preview_past_days", 0),
            preview_future_days=_coerce_int("preview_future_days", 0),
            preview_limit=_coerce_int("preview_limit", 1),
            max_occurrences_per_rule=_coerce_int("max_occurrences_per_rule", 1),
            max_title_length=_coerce_int("max_title_length", 1),
            default_event_duration_minutes=_coerce_int("default_event_duration_minutes", 1),
            default_timezone=str(default_timezone) if default_timezone else None,
            worker_concurrency=_coerce_int("worker_concurrency", 1),
            feed_timeout_seconds=feed_timeout,
            log_level=str(log_level).upper() if log_level is not None else "INFO",
        )


def apply_env_overrides(data: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Overlay ``ICSFEED_<FIELD>`` environment variables onto a config mapping.

    Example: ``ICSFEED_WINDOW_FUTURE_DAYS=90`` sets ``window_future_days``.
    """
    env = os.environ if environ is None else environ
    merged = dict(data)
    for config_field in fields(Config):
        key = f"{ENV_PREFIX}{config_field.name.upper()}"
        if key in env:
            merged[config_field.name] = env[key]
            logger.debug("Config %s overridden from environment", config_field.name)
    return merged


def _load_mapping(path: Path) -> Any:
    """Load a YAML or JSON document; empty files yield an empty mapping."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text) if text.strip() else {}
    loaded = yaml.safe_load(text)
    # safe_load returns None for empty files
    return {} if loaded is None else loaded


def load_config(path: str | Path | None = None, environ: dict[str, str] | None = None) -> Config:
    """Load configuration from a YAML/JSON file plus environment overrides.

    Args:
        path: Optional path to the config file. Without one, only defaults and
              environment overrides apply.
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Config dataclass instance

    Behavior:
    - If file is missing: defaults (plus environment overrides).
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    raw: Any = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            raw = _load_mapping(p)
            if not isinstance(raw, dict):
                logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
                raise ValueError("Config file must contain a mapping at top level")
            logger.info("Loaded configuration from %s", p)
        else:
            logger.info("Config file %s not found; using defaults", p)

    cfg = Config.from_dict(apply_env_overrides(raw, environ))
    logger.debug("Configuration values: %s", cfg)
    return cfg
