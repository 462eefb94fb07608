"""Configuration helpers and feature flag evaluation."""

from __future__ import annotations

import os
from functools import lru_cache


VERSION = "0.3.0"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@lru_cache(maxsize=None)
def feature_enabled(name: str, default: bool = False) -> bool:
    """Return True when the named feature flag is enabled via environment variable.

    Feature names map to environment variables using the pattern:
        feature.ingest.lenient → OSQT_FEATURE_INGEST_LENIENT
    Values are interpreted case-insensitively; "1", "true", "yes", "on" enable the flag.
    """

    env_key = "OSQT_" + name.upper().replace(".", "_")
    raw = os.getenv(env_key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def env_int(name: str, default: int) -> int:
    """Read an integer knob such as OSQT_MAX_WORKERS, falling back on bad input."""
    raw = os.getenv("OSQT_" + name.upper())
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def env_str(name: str, default: str = "") -> str:
    raw = os.getenv("OSQT_" + name.upper())
    if raw is None:
        return default
    return raw.strip()
