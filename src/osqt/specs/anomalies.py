# src/osqt/specs/anomalies.py
from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional


class Severity(str, enum.Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class AnomalyKind(str, enum.Enum):
    # Discovery / IO
    IO_ERROR = "IO_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    SKIPPED = "SKIPPED"                        # filtered by rule / not a spec file
    SYMLINK_NOT_FOLLOWED = "SYMLINK_NOT_FOLLOWED"
    TOO_LARGE = "TOO_LARGE"
    # Parsing / extraction
    PARSE_FAILED = "PARSE_FAILED"              # source not parseable
    EXTRACTION_FAILED = "EXTRACTION_FAILED"    # tree-shape / lookup / duplicate errors
    UNKNOWN_DECLARATION = "UNKNOWN_DECLARATION"
    PLACEHOLDER_COLUMN = "PLACEHOLDER_COLUMN"
    # Catch-all
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Anomaly:
    path: str
    kind: AnomalyKind
    severity: Severity
    detail: str = ""
    blob_sha: Optional[str] = None
    ts_ms: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> Dict:
        return {
            "path": self.path,
            "blob_sha": self.blob_sha or "",
            "kind": self.kind.value,
            "severity": self.severity.value,
            "detail": self.detail,
            "ts_ms": int(self.ts_ms),
        }


class AnomalySink:
    """
    Thread-safe anomaly collector + lightweight observability.

    - emit(): add an anomaly, update counters
    - counters(): snapshot of counters (for summaries)
    - observe_duration(): record timing histograms (file parse times, etc.)
    """

    __slots__ = ("_lock", "_buffer", "_counts", "_timers")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buffer: List[Anomaly] = []
        self._counts: Dict[str, int] = {
            "total": 0,
        }
        self._timers: Dict[str, Dict[str, int]] = {}

    # ----------------------------- public API ---------------------------------

    def emit(self, anomaly: Anomaly) -> None:
        with self._lock:
            self._buffer.append(anomaly)
            self._counts["total"] = self._counts.get("total", 0) + 1
            self._counts[f"kind:{anomaly.kind.value}"] = self._counts.get(f"kind:{anomaly.kind.value}", 0) + 1
            self._counts[f"sev:{anomaly.severity.value}"] = self._counts.get(f"sev:{anomaly.severity.value}", 0) + 1

    def items(self) -> List[Anomaly]:
        with self._lock:
            return list(self._buffer)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def counters(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def observe_duration(self, name: str, seconds: float) -> None:
        """
        Record a single observation into log-scale buckets.
        Example: observe_duration("spec_parse_seconds", dt)
        """
        bucket = _duration_bucket(seconds)
        with self._lock:
            buckets = self._timers.setdefault(name, {})
            buckets[bucket] = buckets.get(bucket, 0) + 1
            total_key = f"{name}::count"
            buckets[total_key] = buckets.get(total_key, 0) + 1

    def timer_histograms(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {k: dict(v) for k, v in self._timers.items()}


# ----------------------------- helpers ----------------------------------------

def _duration_bucket(seconds: float) -> str:
    """
    Log-ish buckets from microseconds to minutes.
    """
    s = max(0.0, float(seconds))
    if s < 1e-3:
        return "<1ms"
    if s < 1e-2:
        return "<10ms"
    if s < 1e-1:
        return "<100ms"
    if s < 1.0:
        return "<1s"
    if s < 10.0:
        return "<10s"
    return ">=10s"
