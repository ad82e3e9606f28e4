from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from ..domain.threads import ThreadKey
from ..observability.logging import get_logger
from ..services.conversation_history import ConversationHistoryStore
from ..services.conversation_state_store import ConversationStateStore
from ..services.interaction_log import KIND_AGENT, InteractionLogger
from .providers.base import AiProvider, ChatTurn

log = get_logger("ai_chain")

SUMMARY_PROMPT = (
    "Summarize this conversation concisely, keeping the main points and any context "
    "needed to continue it."
)


class _StripedLocks:
    """Fixed pool of locks; a key always maps to the same one."""

    def __init__(self, stripes: int = 64):
        self._locks = [threading.Lock() for _ in range(max(1, int(stripes)))]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._locks[hash(key) % len(self._locks)]
        with lock:
            yield


@dataclass(frozen=True, slots=True)
class _Attempt:
    text: str | None
    provider: AiProvider | None
    error: str | None


def _usable(text: str | None) -> bool:
    return isinstance(text, str) and bool(text.strip())


class AiProviderChain:
    """
    Ordered AI providers with per-thread affinity and failover.

    The provider that last answered a thread is tried first on its next turn so
    a conversation does not hop between models; any failure clears that
    affinity and the remaining providers are tried in priority order.
    """

    def __init__(
        self,
        *,
        providers: list[AiProvider],
        states: ConversationStateStore,
        history: ConversationHistoryStore,
        default_system_prompt: str,
        compaction_threshold: int = 20,
        keep_recent: int = 10,
        interactions: InteractionLogger | None = None,
    ):
        self.providers = list(providers)
        self._states = states
        self._history = history
        self._default_system_prompt = default_system_prompt
        self._compaction_threshold = max(1, int(compaction_threshold))
        self._keep_recent = max(1, int(keep_recent))
        self._interactions = interactions
        self._thread_locks = _StripedLocks()

    @property
    def configured(self) -> bool:
        return any(p.configured for p in self.providers)

    def respond(
        self,
        user_message: str,
        thread_key: ThreadKey,
        system_prompt: str | None = None,
    ) -> str | None:
        """
        Answer ``user_message`` in the context of the thread's history.

        Returns None when no provider is configured or every configured one
        failed. Never raises.
        """
        if not self.configured:
            log.warning("ai_no_provider_configured", thread_key=str(thread_key))
            return None

        started = time.monotonic()
        # Serialize turns of the same thread in this process so concurrent
        # replies cannot both append to the same loaded history.
        with self._thread_locks.hold(str(thread_key)):
            history = self._history.load(thread_key)
            prompt = self._system_prompt(system_prompt, self._history.summary(thread_key))
            attempt = self._call_providers(user_message, prompt, history, thread_key)
            if attempt.provider is not None and _usable(attempt.text):
                self._remember(thread_key, history, user_message, attempt.text or "", attempt.provider)

        self._record(thread_key, user_message, attempt, started)
        return attempt.text if _usable(attempt.text) else None

    def _system_prompt(self, override: str | None, summary: str | None) -> str:
        base = str(override or "").strip() or self._default_system_prompt
        if summary:
            return f"{base}\n\nSummary of the earlier conversation:\n{summary}"
        return base

    def _try(
        self,
        provider: AiProvider,
        message: str,
        prompt: str,
        history: list[ChatTurn],
        thread_key: ThreadKey,
    ) -> tuple[str | None, str | None]:
        try:
            text = provider.respond(message, prompt, list(history))
        except Exception as e:
            log.warning(
                "ai_provider_failed",
                provider=provider.name,
                thread_key=str(thread_key),
                error=str(e) or e.__class__.__name__,
            )
            return None, str(e) or e.__class__.__name__
        if not _usable(text):
            log.warning("ai_provider_empty_response", provider=provider.name, thread_key=str(thread_key))
            return None, "empty_response"
        return (text or "").strip(), None

    def _call_providers(
        self,
        message: str,
        prompt: str,
        history: list[ChatTurn],
        thread_key: ThreadKey,
    ) -> _Attempt:
        last_error: str | None = None
        preferred_name = self._states.get(thread_key).preferred_provider
        preferred = next(
            (p for p in self.providers if preferred_name and p.name == preferred_name and p.configured),
            None,
        )

        if preferred is not None:
            text, err = self._try(preferred, message, prompt, history, thread_key)
            if text:
                log.info("ai_provider_succeeded", provider=preferred.name, thread_key=str(thread_key), sticky=True)
                return _Attempt(text=text, provider=preferred, error=None)
            last_error = err
            self._states.update(thread_key, lambda s: s.without_provider())

        for provider in self.providers:
            if provider is preferred:
                continue
            if not provider.configured:
                log.info("ai_provider_skipped_unconfigured", provider=provider.name)
                continue
            text, err = self._try(provider, message, prompt, history, thread_key)
            if text:
                name = provider.name
                self._states.update(thread_key, lambda s: s.with_provider(name))
                log.info("ai_provider_succeeded", provider=name, thread_key=str(thread_key), sticky=False)
                return _Attempt(text=text, provider=provider, error=None)
            last_error = err

        log.warning("ai_all_providers_failed", thread_key=str(thread_key), error=last_error)
        return _Attempt(text=None, provider=None, error=last_error)

    def _remember(
        self,
        thread_key: ThreadKey,
        history: list[ChatTurn],
        user_message: str,
        answer: str,
        provider: AiProvider,
    ) -> None:
        turns = [*history, ChatTurn(role="user", content=user_message), ChatTurn(role="assistant", content=answer)]
        summary: str | None = None
        if len(turns) > self._compaction_threshold:
            summary = self._compact(thread_key, turns, provider)
            if summary is not None:
                turns = turns[-self._keep_recent :]
        self._history.save(thread_key, turns, summary)

    def _compact(self, thread_key: ThreadKey, turns: list[ChatTurn], provider: AiProvider) -> str | None:
        """
        Summarize everything but the most recent turns, folding in the prior
        summary so nothing older is lost. None means keep the full history.
        """
        older = turns[: -self._keep_recent]
        lines: list[str] = []
        prior = self._history.summary(thread_key)
        if prior:
            lines.append(f"earlier summary: {prior}")
        lines.extend(f"{t.role}: {t.content}" for t in older)
        try:
            summary = provider.respond("\n".join(lines), SUMMARY_PROMPT, [])
        except Exception as e:
            log.warning("history_compaction_failed", provider=provider.name, thread_key=str(thread_key), error=str(e))
            return None
        if not _usable(summary):
            log.warning("history_compaction_empty", provider=provider.name, thread_key=str(thread_key))
            return None
        log.info("history_compacted", provider=provider.name, thread_key=str(thread_key), dropped_turns=len(older))
        return (summary or "").strip()

    def _record(self, thread_key: ThreadKey, user_message: str, attempt: _Attempt, started: float) -> None:
        if self._interactions is None:
            return
        self._interactions.record(
            team_id=thread_key.team_id,
            user_id=thread_key.user_id,
            kind=KIND_AGENT,
            detail=attempt.provider.name if attempt.provider else "none",
            success=attempt.provider is not None,
            meta={
                "threadKey": str(thread_key),
                "channel": thread_key.channel,
                "responseMs": int((time.monotonic() - started) * 1000),
                "messageLength": len(user_message or ""),
                "responseLength": len(attempt.text or ""),
                "error": attempt.error,
            },
        )
