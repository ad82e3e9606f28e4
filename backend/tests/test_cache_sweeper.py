from __future__ import annotations

import time

from skybot.domain.threads import ThreadKey
from skybot.services.cache_sweeper import CacheSweeper
from skybot.services.conversation_history import ConversationHistoryStore
from skybot.services.conversation_state_store import ConversationStateStore
from skybot.services.event_dedupe import EventDeduplicator


def _sweeper(**kw) -> CacheSweeper:
    return CacheSweeper(
        dedupe=EventDeduplicator(retention_seconds=3600),
        states=ConversationStateStore(),
        history=ConversationHistoryStore(),
        **kw,
    )


def test_run_once_reports_what_it_purged():
    sw = _sweeper(pending_ttl_seconds=3600, ai_mode_ttl_seconds=86400)
    key = ThreadKey.parse("T1_U1_C1_101")
    sw.dedupe.mark_processed("Ev1")
    sw.states.update(key, lambda s: s.record_unmatched(max_attempts=3).with_pending(message="x", thread_anchor="101"))

    out = sw.run_once(now=time.time() + 7200)

    assert out["events_purged"] == 1
    assert out["pending_cleared"] == 1
    assert out["states_dropped"] == 1
    assert len(sw.dedupe) == 0 and len(sw.states) == 0


def test_start_is_idempotent_and_stop_joins():
    sw = _sweeper(interval_seconds=3600)
    sw.start()
    first = sw._thread
    sw.start()
    assert sw._thread is first
    assert first is not None and first.daemon

    sw.stop(timeout=2.0)
    assert not first.is_alive()
    assert sw._thread is None
