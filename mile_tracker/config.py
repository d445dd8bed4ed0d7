from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from .env import get_env

DEFAULT_WEEK_COUNT = 12
DEFAULT_DAY_LABELS: tuple[str, ...] = ("Tuesday", "Friday")
DEFAULT_SCHEDULE_TITLE = "Gruber's Mile Training Schedule"
DEFAULT_EXPORT_FILENAME = "gruber-mile-training-schedule.md"


class CompletionPolicy(str, Enum):
    """How a completion reacts when the history write cannot be persisted."""

    CONFIRM = "confirm"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class AppConfig:
    week_count: int = DEFAULT_WEEK_COUNT
    day_labels: tuple[str, ...] = DEFAULT_DAY_LABELS
    completion_policy: CompletionPolicy = CompletionPolicy.CONFIRM
    schedule_title: str = DEFAULT_SCHEDULE_TITLE
    export_filename: str = DEFAULT_EXPORT_FILENAME


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger("mile_tracker")
    level_name = get_env("LOG_LEVEL") or os.getenv("LOG_LEVEL")
    if level_name:
        level = getattr(logging, level_name.upper(), logging.INFO)
        logger.setLevel(level)
    return logger


LOGGER = _configure_logger()


def _config_path() -> Path | None:
    """Resolve the TOML configuration file, if present."""
    env_override = get_env("CONFIG")
    if env_override:
        path = Path(env_override).expanduser()
        return path if path.exists() else None

    default_path = Path("config/mile_tracker.toml")
    if default_path.exists():
        return default_path
    return None


def _load_toml(path: Path) -> Mapping[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _coerce_day_labels(raw: Any) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_DAY_LABELS
    if isinstance(raw, str):
        entries = [entry.strip() for entry in raw.split(",")]
    elif isinstance(raw, (list, tuple)):
        entries = [str(entry).strip() for entry in raw]
    else:
        return DEFAULT_DAY_LABELS
    cleaned = tuple(label for label in entries if label)
    return cleaned or DEFAULT_DAY_LABELS


def _coerce_week_count(raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_WEEK_COUNT
    return value if value > 0 else DEFAULT_WEEK_COUNT


def _coerce_policy(raw: Any) -> CompletionPolicy:
    try:
        return CompletionPolicy(str(raw).strip().lower())
    except ValueError:
        LOGGER.warning("Unknown completion_policy %r; using %s", raw, CompletionPolicy.CONFIRM.value)
        return CompletionPolicy.CONFIRM


def _coerce_text(raw: Any, default: str) -> str:
    text = str(raw).strip() if raw is not None else ""
    return text or default


def _build_config(raw: Mapping[str, Any]) -> AppConfig:
    return AppConfig(
        week_count=_coerce_week_count(raw.get("week_count", DEFAULT_WEEK_COUNT)),
        day_labels=_coerce_day_labels(raw.get("day_labels")),
        completion_policy=_coerce_policy(raw.get("completion_policy", CompletionPolicy.CONFIRM.value)),
        schedule_title=_coerce_text(raw.get("schedule_title"), DEFAULT_SCHEDULE_TITLE),
        export_filename=_coerce_text(raw.get("export_filename"), DEFAULT_EXPORT_FILENAME),
    )


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load configuration once, falling back to built-in defaults."""
    path = _config_path()
    if not path:
        return AppConfig()
    data = _load_toml(path)
    return _build_config(data)


def as_dict() -> dict[str, Any]:
    """Return the effective configuration for debug/CLI display."""
    config = get_config()
    return {
        "week_count": config.week_count,
        "day_labels": list(config.day_labels),
        "completion_policy": config.completion_policy.value,
        "schedule_title": config.schedule_title,
        "export_filename": config.export_filename,
        "source": str(_config_path() or "defaults"),
    }
