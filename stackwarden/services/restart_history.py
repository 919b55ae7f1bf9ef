"""Restart History — in-memory journal of orchestration runs.

Every restart, whether requested by an operator or fired by the log
monitor, is recorded here so the API can show what happened recently.
History lives only as long as the process; nothing is written to disk.
"""

import logging
import threading
from collections import deque
from datetime import datetime, timezone

log = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc).isoformat()


class RestartHistory:
    """Bounded, thread-safe list of restart records (RST-0001, ...)."""

    def __init__(self, size=50):
        self._records = deque(maxlen=size)
        self._lock = threading.Lock()
        self._counter = 0

    def begin(self, source, targets):
        """Open a record for a run that is about to start.  Returns it."""
        with self._lock:
            self._counter += 1
            record = {
                "id": f"RST-{self._counter:04d}",
                "source": source,
                "targets": list(targets) if targets else None,
                "started_at": _now(),
                "finished_at": None,
                "succeeded": None,
                "busy": False,
                "error": None,
            }
            self._records.append(record)
        return record

    def finish(self, record, outcome):
        """Close *record* with the RestartOutcome of the run."""
        with self._lock:
            record["finished_at"] = _now()
            record["succeeded"] = outcome.succeeded
            record["busy"] = outcome.busy
            record["error"] = outcome.error_message
        log.info(
            "Restart %s (%s): %s",
            record["id"],
            record["source"],
            "busy" if outcome.busy else ("ok" if outcome.succeeded else "failed"),
        )

    def recent(self, limit=20):
        """Return up to *limit* records, newest first."""
        with self._lock:
            records = [dict(r) for r in reversed(self._records)]
        return records[:limit]

    def clear(self):
        """Forget every record — used in testing only."""
        with self._lock:
            self._records.clear()
            self._counter = 0
