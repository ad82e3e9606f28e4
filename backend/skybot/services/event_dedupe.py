from __future__ import annotations

import threading
import time

from ..observability.logging import get_logger

log = get_logger("event_dedupe")


class EventDeduplicator:
    """
    Best-effort, per-process memory of Slack event ids already handled.

    Slack redelivers an event when it does not get a fast 2xx; an id seen
    within the retention window is not dispatched again. Restarts forget
    everything, which is acceptable: Slack only retries a few times.
    """

    def __init__(self, *, retention_seconds: int = 3600):
        self.retention_seconds = max(1, int(retention_seconds))
        self._lock = threading.Lock()
        self._seen: dict[str, float] = {}

    def is_processed(self, event_id: str | None) -> bool:
        eid = str(event_id or "").strip()
        if not eid:
            return False
        with self._lock:
            return eid in self._seen

    def mark_processed(self, event_id: str | None) -> None:
        eid = str(event_id or "").strip()
        if not eid:
            return
        with self._lock:
            self._seen.setdefault(eid, time.time())

    def mark_if_new(self, event_id: str | None) -> bool:
        """
        Check and mark in one step.

        Returns True if this is the first time the id was seen (or there is no
        id to check); False for a duplicate.
        """
        eid = str(event_id or "").strip()
        if not eid:
            return True
        with self._lock:
            if eid in self._seen:
                return False
            self._seen[eid] = time.time()
            return True

    def purge_expired(self, *, now: float | None = None) -> int:
        cutoff = (now if now is not None else time.time()) - self.retention_seconds
        with self._lock:
            expired = [k for k, seen_at in self._seen.items() if seen_at < cutoff]
            for k in expired:
                del self._seen[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
