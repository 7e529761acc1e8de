"""
Structured JSON logger — append-only, one object per line (.jsonl).

Usage:
    from itinerary_core.modules.observability.logger import StructuredLogger

    logger = StructuredLogger()
    logger.log("trip_42", "CACHE_INVALIDATION", {"deleted": 6})

Logs are written to  <LOGS_DIR>/<session_id>.jsonl  (config.LOGS_DIR).
Events without a natural session go to the "default" session.  A record that
cannot be written (unwritable LOGS_DIR, full disk) is reported through the
standard logging module and dropped.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import IO

from itinerary_core import config

DEFAULT_SESSION = "default"

logger = logging.getLogger(__name__)


class StructuredLogger:
    """Thread-safe, append-only JSONL logger."""

    def __init__(self, logs_dir: Path | str | None = None) -> None:
        self._logs_dir = Path(logs_dir) if logs_dir else None
        self._lock = threading.Lock()
        self._handles: dict[str, IO[str]] = {}  # session_id -> file handle

    @property
    def logs_dir(self) -> Path:
        # Resolved lazily so LOGS_DIR overrides made after import still apply.
        return self._logs_dir or Path(config.LOGS_DIR)

    # ── public API ────────────────────────────────────────────────────────

    def log(self, session_id: str | None, event_type: str, payload: dict) -> None:
        """Append one structured JSON record to ``<session_id>.jsonl``."""
        session_id = session_id or DEFAULT_SESSION
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "event_type": event_type,
            "payload": payload,
        }
        line = json.dumps(record, default=str, ensure_ascii=False) + "\n"

        with self._lock:
            try:
                fh = self._handles.get(session_id)
                if fh is None:
                    fh = self._open(session_id)
                fh.write(line)
                fh.flush()
            except OSError as exc:
                # Event logging never fails the caller.
                logger.warning("Dropped %s event for session %s: %s", event_type, session_id, exc)

    def performance(self, component: str, started: float, ended: float, **extra) -> None:
        """Shorthand for the PERFORMANCE event (perf_counter start/end)."""
        payload = {"component": component, "duration_ms": round((ended - started) * 1000, 2)}
        payload.update(extra)
        self.log(DEFAULT_SESSION, "PERFORMANCE", payload)

    def close(self, session_id: str | None = None) -> None:
        """Close one or all open file handles."""
        with self._lock:
            if session_id:
                fh = self._handles.pop(session_id, None)
                if fh:
                    fh.close()
            else:
                for fh in self._handles.values():
                    fh.close()
                self._handles.clear()

    # ── internals ─────────────────────────────────────────────────────────

    def _open(self, session_id: str) -> IO[str]:
        os.makedirs(self.logs_dir, exist_ok=True)
        path = self.logs_dir / f"{session_id}.jsonl"
        fh = open(path, "a", encoding="utf-8")  # noqa: SIM115
        self._handles[session_id] = fh
        return fh
