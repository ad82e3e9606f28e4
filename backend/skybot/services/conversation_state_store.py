from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from ..domain.conversation_state import ConversationState
from ..domain.threads import ThreadKey


StateUpdate = Callable[[ConversationState], ConversationState | None]


@dataclass(frozen=True, slots=True)
class ExpiryCounts:
    pending_cleared: int
    ai_mode_cleared: int
    dropped: int


class ConversationStateStore:
    """
    In-process registry of ConversationState keyed by serialized ThreadKey.

    ``update`` is the only way to change an entry: the transition function runs
    under the store lock, so two events for the same thread can never both read
    the old value and overwrite each other.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._states: dict[str, ConversationState] = {}

    def get(self, key: ThreadKey | str) -> ConversationState:
        with self._lock:
            return self._states.get(str(key)) or ConversationState()

    def update(self, key: ThreadKey | str, fn: StateUpdate) -> ConversationState:
        k = str(key)
        with self._lock:
            current = self._states.get(k) or ConversationState()
            nxt = fn(current) or ConversationState()
            if nxt.is_empty:
                self._states.pop(k, None)
            else:
                self._states[k] = nxt
            return nxt

    def clear(self, key: ThreadKey | str) -> None:
        with self._lock:
            self._states.pop(str(key), None)

    def expire(
        self,
        *,
        pending_ttl_seconds: int,
        ai_mode_ttl_seconds: int,
        idle_ttl_seconds: int,
        now: float | None = None,
    ) -> ExpiryCounts:
        t = now if now is not None else time.time()
        pending_cutoff = t - max(1, int(pending_ttl_seconds))
        ai_mode_cutoff = t - max(1, int(ai_mode_ttl_seconds))
        idle_cutoff = t - max(1, int(idle_ttl_seconds))

        pending_cleared = 0
        ai_mode_cleared = 0
        dropped = 0
        with self._lock:
            for k in list(self._states.keys()):
                cur = self._states[k]
                nxt = cur.expire(pending_cutoff=pending_cutoff, ai_mode_cutoff=ai_mode_cutoff)
                if cur.pending_escalation is not None and nxt.pending_escalation is None:
                    pending_cleared += 1
                if cur.ai_mode_since is not None and nxt.ai_mode_since is None:
                    ai_mode_cleared += 1
                if nxt.is_empty or nxt.updated_at < idle_cutoff:
                    del self._states[k]
                    dropped += 1
                elif nxt is not cur:
                    self._states[k] = nxt
        return ExpiryCounts(pending_cleared=pending_cleared, ai_mode_cleared=ai_mode_cleared, dropped=dropped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
