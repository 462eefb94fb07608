"""Logging setup for osqt, built on loguru.

Nothing here runs at import time. Entry points (the CLI, services embedding the
parser) call ``configure_logging`` once; library code only asks for bound
loggers through ``get_logger`` and hands them down explicitly.

Environment Variables:
    OSQT_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
    OSQT_LOG_JSON: 0|1 (default: 0, human-readable; 1 = NDJSON lines on stderr)
    OSQT_LOG_FILE: path to an NDJSON log file (optional)
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .config import env_str, feature_enabled

_human_format = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - "
    "<level>{message}</level>"
)


def _ndjson_line(message) -> str:
    record = message.record
    line = {
        "level": record["level"].name,
        "time": int(record["time"].timestamp() * 1000),
        "msg": record["message"],
        "pid": record["process"].id,
    }
    for key, value in record["extra"].items():
        line[key] = value if isinstance(value, (str, int, float, bool)) or value is None else str(value)
    if record["exception"]:
        exc = record["exception"]
        line["err"] = {
            "type": exc.type.__name__ if exc.type else "Error",
            "message": str(exc.value) if exc.value else "",
        }
    return json.dumps(line)


def _stderr_sink(message) -> None:
    # stdout carries command output (exported documents); never log from inside a sink.
    sys.stderr.write(_ndjson_line(message) + "\n")
    sys.stderr.flush()


def configure_logging(
    level: Optional[str] = None,
    json_mode: Optional[bool] = None,
    log_file: Optional[str] = None,
) -> None:
    """Replace loguru's handlers with the osqt console (and optional file) sinks."""
    level = (level or env_str("log_level", "INFO") or "INFO").upper()
    if json_mode is None:
        json_mode = feature_enabled("log_json")
    log_file = log_file if log_file is not None else env_str("log_file")

    logger.remove()
    logger.configure(extra={"name": "osqt"})
    if json_mode:
        logger.add(_stderr_sink, level=level, colorize=False)
    else:
        logger.add(sys.stderr, level=level, format=_human_format, colorize=None)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        def _file_sink(message) -> None:
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(_ndjson_line(message) + "\n")

        logger.add(_file_sink, level="DEBUG", colorize=False)


def get_logger(name: str, **extra: Any):
    """Return a loguru logger bound to ``name`` (and any extra context fields)."""
    return logger.bind(name=name, **extra)
