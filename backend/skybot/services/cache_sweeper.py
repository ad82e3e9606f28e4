from __future__ import annotations

import threading
from typing import Any

from ..observability.logging import get_logger
from .conversation_history import ConversationHistoryStore
from .conversation_state_store import ConversationStateStore
from .event_dedupe import EventDeduplicator

log = get_logger("cache_sweeper")


class CacheSweeper:
    """
    The one housekeeping loop: expires seen event ids, stale conversation
    state and idle history cache entries on a fixed interval.
    """

    def __init__(
        self,
        *,
        dedupe: EventDeduplicator,
        states: ConversationStateStore,
        history: ConversationHistoryStore,
        interval_seconds: int = 3600,
        pending_ttl_seconds: int = 3600,
        ai_mode_ttl_seconds: int = 24 * 3600,
    ):
        self.dedupe = dedupe
        self.states = states
        self.history = history
        self.interval_seconds = max(1, int(interval_seconds))
        self.pending_ttl_seconds = max(1, int(pending_ttl_seconds))
        self.ai_mode_ttl_seconds = max(1, int(ai_mode_ttl_seconds))
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self, *, now: float | None = None) -> dict[str, Any]:
        events = self.dedupe.purge_expired(now=now)
        counts = self.states.expire(
            pending_ttl_seconds=self.pending_ttl_seconds,
            ai_mode_ttl_seconds=self.ai_mode_ttl_seconds,
            idle_ttl_seconds=self.ai_mode_ttl_seconds,
            now=now,
        )
        histories = self.history.purge_idle(idle_seconds=self.ai_mode_ttl_seconds, now=now)
        out = {
            "events_purged": events,
            "pending_cleared": counts.pending_cleared,
            "ai_mode_cleared": counts.ai_mode_cleared,
            "states_dropped": counts.dropped,
            "histories_purged": histories,
        }
        log.info("cache_sweep_done", **out)
        return out

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:
                log.exception("cache_sweep_failed")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="cache-sweeper", daemon=True)
        self._thread.start()
        log.info("cache_sweeper_started", interval_seconds=self.interval_seconds)

    def stop(self, *, timeout: float = 5.0) -> None:
        self._stop.set()
        t = self._thread
        if t is not None:
            t.join(timeout=timeout)
        self._thread = None
        log.info("cache_sweeper_stopped")
