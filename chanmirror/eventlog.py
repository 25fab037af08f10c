"""Activity event log and metrics snapshot writer."""

from __future__ import annotations

import json
import os
import threading
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from .constants import EVENTS_FILE, METRICS_FILE, MODES
from .errors import MirrorError

EVENT_KINDS = frozenset(
    {
        "forwarded",
        "failed",
        "suppressed",
        "switch",
        "system",
    }
)
COUNTER_FIELDS = ("forwarded", "failed", "suppressed")


class MirrorEventLog:
    """Thread-safe writer for mirror activity events and metrics."""

    def __init__(
        self,
        state_dir: Path,
        *,
        mode: str = "logs",
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        """Open the event file and write the initial metrics snapshot.

        Args:
            state_dir: Directory receiving `events.jsonl` and `metrics.json`.
            mode: Daemon input mode recorded in metrics.
            now_provider: Optional timestamp provider for deterministic tests.
        """
        if mode not in MODES:
            raise MirrorError(f"validation error: unsupported mode: {mode}")

        self._events_path = state_dir / EVENTS_FILE
        self._metrics_path = state_dir / METRICS_FILE
        self._now = now_provider or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._closed = False

        self._events_path.parent.mkdir(parents=True, exist_ok=True)
        self._events_handle = self._events_path.open("a", encoding="utf-8", errors="replace")

        self._metrics_snapshot: dict[str, Any] = {
            "started_at": _iso_timestamp(self._now()),
            "mode": mode,
            "active_file": None,
            "forwarded": 0,
            "failed": 0,
            "suppressed": 0,
            "last_forward_at": None,
        }
        self._write_metrics_locked()

    def log(self, kind: str, message: str, *, meta: dict[str, Any] | None = None) -> None:
        """Append one event and bump the matching counter.

        Args:
            kind: Event kind.
            message: Human-readable event text.
            meta: Optional structured metadata.
        """
        if kind not in EVENT_KINDS:
            raise MirrorError(f"validation error: unsupported event kind: {kind}")
        if meta is not None and not isinstance(meta, dict):
            raise MirrorError("validation error: event meta must be an object")

        now = _iso_timestamp(self._now())
        event = {"ts": now, "kind": kind, "message": message, "meta": meta}

        with self._lock:
            self._ensure_open_locked()
            self._events_handle.write(json.dumps(event, ensure_ascii=False) + "\n")
            self._events_handle.flush()

            if kind in COUNTER_FIELDS:
                updated = deepcopy(self._metrics_snapshot)
                updated[kind] += 1
                if kind == "forwarded":
                    updated["last_forward_at"] = now
                self._metrics_snapshot = updated
                self._write_metrics_locked()

    def set_active_file(self, path: Path | None) -> None:
        """Record the file currently followed."""
        with self._lock:
            self._ensure_open_locked()
            self._metrics_snapshot["active_file"] = str(path) if path is not None else None
            self._write_metrics_locked()

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of the current metrics."""
        with self._lock:
            return deepcopy(self._metrics_snapshot)

    def close(self) -> None:
        """Flush and close open handles."""
        with self._lock:
            if self._closed:
                return
            self._events_handle.flush()
            self._events_handle.close()
            self._closed = True

    def _write_metrics_locked(self) -> None:
        """Write the metrics snapshot atomically.

        Assumes caller holds `_lock`.
        """
        tmp_path = self._metrics_path.with_name(f"{self._metrics_path.name}.tmp")
        payload = json.dumps(self._metrics_snapshot, ensure_ascii=False, indent=2) + "\n"
        tmp_path.write_text(payload, encoding="utf-8", errors="replace")
        os.replace(tmp_path, self._metrics_path)

    def _ensure_open_locked(self) -> None:
        """Raise when the log is closed.

        Assumes caller holds `_lock`.
        """
        if self._closed:
            raise MirrorError("event log is closed")


def _iso_timestamp(value: datetime) -> str:
    """Return ISO 8601 timestamp with timezone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
