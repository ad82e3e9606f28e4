from __future__ import annotations

import threading
import time

import pytest

from skybot.domain.conversation_state import ConversationState, Phase
from skybot.domain.threads import ThreadKey
from skybot.services.conversation_state_store import ConversationStateStore

KEY = ThreadKey(team_id="T1", user_id="U1", channel="C1", thread_anchor="101")


def test_thread_key_serializes_and_parses():
    assert str(KEY) == "T1_U1_C1_101"
    assert ThreadKey.parse("T1_U1_C1_101") == KEY
    assert ThreadKey.for_message(team_id="T1", user_id="U1", channel="C1", ts="101") == KEY
    assert ThreadKey.for_message(team_id="T1", user_id="U1", channel="C1", ts="205", thread_ts="101") == KEY


def test_thread_key_parse_rejects_garbage():
    with pytest.raises(ValueError):
        ThreadKey.parse("T1_U1")


def test_phases_follow_transitions():
    store = ConversationStateStore()
    assert store.get(KEY).phase is Phase.IDLE

    s = store.update(KEY, lambda st: st.record_unmatched(max_attempts=3))
    assert s.phase is Phase.ATTEMPTING and s.attempt_count == 1

    s = store.update(KEY, lambda st: st.with_pending(message="foo", thread_anchor="101"))
    assert s.phase is Phase.PENDING_CONFIRMATION

    s = store.update(KEY, lambda st: st.accept())
    assert s.phase is Phase.AI_MODE
    assert s.attempt_count == 0 and s.pending_escalation is None


def test_attempt_count_is_clamped_at_threshold():
    s = ConversationState()
    for _ in range(5):
        s = s.record_unmatched(max_attempts=3)
    assert s.attempt_count == 3


def test_reset_drops_the_entry():
    store = ConversationStateStore()
    store.update(KEY, lambda st: st.accept().with_provider("openai"))
    assert len(store) == 1
    store.update(KEY, lambda st: st.reset())
    assert len(store) == 0
    assert store.get(KEY).is_empty


def test_updates_are_atomic_under_contention():
    store = ConversationStateStore()

    def _worker():
        for _ in range(200):
            store.update(KEY, lambda st: st.record_unmatched(max_attempts=10_000))

    threads = [threading.Thread(target=_worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert store.get(KEY).attempt_count == 1600


def test_expire_clears_stale_pending_with_its_counter():
    store = ConversationStateStore()
    store.update(
        KEY,
        lambda st: st.record_unmatched(max_attempts=3).with_pending(message="foo", thread_anchor="101").with_provider("openai"),
    )
    counts = store.expire(
        pending_ttl_seconds=3600,
        ai_mode_ttl_seconds=86400,
        idle_ttl_seconds=86400,
        now=time.time() + 7200,
    )
    assert counts.pending_cleared == 1
    assert counts.dropped == 0
    s = store.get(KEY)
    assert s.pending_escalation is None and s.attempt_count == 0
    assert s.preferred_provider == "openai"


def test_expire_clears_old_ai_mode_and_drops_idle_entries():
    store = ConversationStateStore()
    store.update(KEY, lambda st: st.accept().with_provider("gemini"))
    counts = store.expire(
        pending_ttl_seconds=3600,
        ai_mode_ttl_seconds=86400,
        idle_ttl_seconds=86400,
        now=time.time() + 2 * 86400,
    )
    assert counts.ai_mode_cleared == 1
    assert counts.dropped == 1
    assert len(store) == 0
