from __future__ import annotations

import threading
import time

from skybot.services.event_dedupe import EventDeduplicator


def test_mark_if_new_accepts_first_and_rejects_repeat():
    d = EventDeduplicator()
    assert d.mark_if_new("Ev1") is True
    assert d.mark_if_new("Ev1") is False
    assert d.is_processed("Ev1") is True
    assert len(d) == 1


def test_missing_event_id_is_never_a_duplicate():
    d = EventDeduplicator()
    assert d.mark_if_new(None) is True
    assert d.mark_if_new("  ") is True
    d.mark_processed("")
    assert d.is_processed("") is False
    assert len(d) == 0


def test_purge_expired_drops_only_old_ids():
    d = EventDeduplicator(retention_seconds=60)
    d.mark_processed("old")
    assert d.purge_expired(now=time.time() + 30) == 0
    assert d.purge_expired(now=time.time() + 120) == 1
    assert d.is_processed("old") is False
    assert d.mark_if_new("old") is True


def test_concurrent_deliveries_pass_once():
    d = EventDeduplicator()
    wins: list[bool] = []
    lock = threading.Lock()

    def _worker():
        ok = d.mark_if_new("Ev-race")
        with lock:
            wins.append(ok)

    threads = [threading.Thread(target=_worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert wins.count(True) == 1
