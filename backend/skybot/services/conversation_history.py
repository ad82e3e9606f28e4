from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from ..ai.providers.base import ChatTurn
from ..domain.threads import ThreadKey
from ..observability.logging import get_logger
from ..repositories import agent_conversations_repo as conversations_repo

log = get_logger("conversation_history")


@dataclass(slots=True)
class _CachedHistory:
    turns: list[ChatTurn]
    summary: str | None = None
    touched_at: float = field(default_factory=time.time)


def _parse_turns(raw: object) -> list[ChatTurn]:
    out: list[ChatTurn] = []
    for it in raw if isinstance(raw, list) else []:
        turn = ChatTurn.from_dict(it)
        if turn is not None:
            out.append(turn)
    return out


class ConversationHistoryStore:
    """
    Per-thread AI turn history: DynamoDB first, in-memory cache as fallback.

    Durable failures never reach the caller. A conversation keeps working from
    the cache until the next successful write.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cache: dict[str, _CachedHistory] = {}

    def _cached(self, key: str) -> _CachedHistory | None:
        with self._lock:
            return self._cache.get(key)

    def load(self, thread_key: ThreadKey) -> list[ChatTurn]:
        k = str(thread_key)
        try:
            rec = conversations_repo.get_conversation(thread_key=k)
        except Exception as e:
            log.warning("history_load_failed", thread_key=k, error=str(e) or "unknown_error")
            rec = None
        else:
            if rec and rec.get("isActive"):
                entry = _CachedHistory(
                    turns=_parse_turns(rec.get("turns")),
                    summary=str(rec.get("summary") or "").strip() or None,
                )
                with self._lock:
                    self._cache[k] = entry
                return list(entry.turns)

        cached = self._cached(k)
        turns = list(cached.turns) if cached else []
        log.info("history_loaded_from_cache", thread_key=k, turns=len(turns))
        return turns

    def summary(self, thread_key: ThreadKey) -> str | None:
        """Summary of compacted turns, as of the last load or save."""
        cached = self._cached(str(thread_key))
        return cached.summary if cached else None

    def save(self, thread_key: ThreadKey, turns: list[ChatTurn], summary: str | None = None) -> None:
        k = str(thread_key)
        with self._lock:
            prev = self._cache.get(k)
            # A None summary means "unchanged"; only compaction replaces it.
            effective = summary if summary is not None else (prev.summary if prev else None)
            self._cache[k] = _CachedHistory(turns=list(turns), summary=effective)

        try:
            conversations_repo.upsert_conversation(
                thread_key=k,
                team_id=thread_key.team_id,
                user_id=thread_key.user_id,
                channel=thread_key.channel,
                thread_ts=thread_key.thread_anchor or None,
                turns=[t.to_dict() for t in turns],
                summary=effective,
            )
        except Exception as e:
            log.warning("history_save_failed", thread_key=k, turns=len(turns), error=str(e) or "unknown_error")

    def deactivate(self, thread_key: ThreadKey) -> None:
        k = str(thread_key)
        with self._lock:
            self._cache.pop(k, None)
        try:
            existed = conversations_repo.deactivate_conversation(thread_key=k)
            log.info("history_deactivated", thread_key=k, existed=existed)
        except Exception as e:
            log.warning("history_deactivate_failed", thread_key=k, error=str(e) or "unknown_error")

    def purge_idle(self, *, idle_seconds: int, now: float | None = None) -> int:
        cutoff = (now if now is not None else time.time()) - max(1, int(idle_seconds))
        with self._lock:
            stale = [k for k, v in self._cache.items() if v.touched_at < cutoff]
            for k in stale:
                del self._cache[k]
        return len(stale)
