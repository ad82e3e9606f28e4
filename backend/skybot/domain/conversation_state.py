"""
Per-thread conversation state.

One immutable value per ThreadKey replaces separate "attempts", "pending
message" and "AI mode" maps, so the pieces can never drift apart. The phases:

    idle -> attempting(n) -> pending_confirmation -> ai_mode -> idle

Every transition returns a new value; the store swaps it in atomically.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum


class Phase(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    PENDING_CONFIRMATION = "pending_confirmation"
    AI_MODE = "ai_mode"


@dataclass(frozen=True, slots=True)
class PendingEscalation:
    message: str
    thread_anchor: str
    captured_at: float


@dataclass(frozen=True, slots=True)
class ConversationState:
    attempt_count: int = 0
    pending_escalation: PendingEscalation | None = None
    ai_mode_since: float | None = None
    preferred_provider: str | None = None
    updated_at: float = 0.0

    @property
    def phase(self) -> Phase:
        if self.ai_mode_since is not None:
            return Phase.AI_MODE
        if self.pending_escalation is not None:
            return Phase.PENDING_CONFIRMATION
        if self.attempt_count > 0:
            return Phase.ATTEMPTING
        return Phase.IDLE

    @property
    def in_ai_mode(self) -> bool:
        return self.ai_mode_since is not None

    @property
    def is_empty(self) -> bool:
        return (
            self.attempt_count == 0
            and self.pending_escalation is None
            and self.ai_mode_since is None
            and self.preferred_provider is None
        )

    def _touch(self, **changes) -> ConversationState:
        return replace(self, updated_at=time.time(), **changes)

    def record_unmatched(self, *, max_attempts: int) -> ConversationState:
        # Clamped: once the prompt threshold is reached, further misses re-prompt at the same count.
        return self._touch(attempt_count=min(self.attempt_count + 1, max(1, int(max_attempts))))

    def with_pending(self, *, message: str, thread_anchor: str) -> ConversationState:
        pending = PendingEscalation(message=message, thread_anchor=thread_anchor, captured_at=time.time())
        return self._touch(pending_escalation=pending)

    def accept(self) -> ConversationState:
        return self._touch(attempt_count=0, pending_escalation=None, ai_mode_since=time.time())

    def reset(self) -> ConversationState:
        return ConversationState(updated_at=time.time())

    def with_provider(self, name: str) -> ConversationState:
        return self._touch(preferred_provider=name)

    def without_provider(self) -> ConversationState:
        return self._touch(preferred_provider=None)

    def expire(self, *, pending_cutoff: float, ai_mode_cutoff: float) -> ConversationState:
        """
        Drop the parts of this state that outlived their retention window.

        A stale pending escalation takes its attempt counter with it; stale AI
        mode takes the provider affinity with it.
        """
        out = self
        pe = out.pending_escalation
        if pe is not None and pe.captured_at < pending_cutoff:
            out = replace(out, attempt_count=0, pending_escalation=None)
        if out.ai_mode_since is not None and out.ai_mode_since < ai_mode_cutoff:
            out = replace(out, ai_mode_since=None, preferred_provider=None)
        return out
