"""Environment-driven settings for weak-value maps."""

from __future__ import annotations

import os
from dataclasses import dataclass

REAP_INTERVAL_ENV = "WEAKVALUEDICTS_REAP_INTERVAL"
FLUSH_ON_RELEASE_ENV = "WEAKVALUEDICTS_FLUSH_ON_RELEASE"

_FALSEY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    reap_interval: float = 0.0
    flush_on_release: bool = True


def _parse_interval(raw: str) -> float:
    stripped = raw.strip()
    if not stripped:
        return 0.0
    try:
        value = float(stripped)
    except ValueError:
        return 0.0
    if value != value or value < 0:
        return 0.0
    return value


def _parse_flag(raw: str, default: bool) -> bool:
    stripped = raw.strip().lower()
    if not stripped:
        return default
    return stripped not in _FALSEY


_SETTINGS_CACHE: Settings | None = None
_SETTINGS_RAW: tuple[str, str] | None = None


def settings() -> Settings:
    global _SETTINGS_CACHE, _SETTINGS_RAW
    raw = (
        os.environ.get(REAP_INTERVAL_ENV, ""),
        os.environ.get(FLUSH_ON_RELEASE_ENV, ""),
    )
    if _SETTINGS_CACHE is None or raw != _SETTINGS_RAW:
        _SETTINGS_RAW = raw
        _SETTINGS_CACHE = Settings(
            reap_interval=_parse_interval(raw[0]),
            flush_on_release=_parse_flag(raw[1], True),
        )
    return _SETTINGS_CACHE
