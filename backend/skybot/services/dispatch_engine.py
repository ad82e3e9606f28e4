from __future__ import annotations

import re

from ..ai.provider_chain import AiProviderChain
from ..domain.conversation_state import ConversationState, PendingEscalation
from ..domain.slack_events import InteractionPayload, SlackMessageEvent
from ..domain.threads import ThreadKey
from ..observability.logging import get_logger
from .commands import CommandRegistry
from .conversation_history import ConversationHistoryStore
from .conversation_state_store import ConversationStateStore
from .event_dedupe import EventDeduplicator
from .interaction_log import KIND_BUTTON, KIND_COMMAND, InteractionLogger
from .slack_blocks import ACTION_CONFIRM_AI, ACTION_DECLINE_AI, confirmation_blocks, confirmation_text
from .slack_tokens import SlackTokenStore
from .slack_web import SlackGateway

log = get_logger("dispatch")

_MENTION_RE = re.compile(r"<@[^>]+>")
_HANDLED_EVENT_TYPES = ("message", "app_mention")

THINKING_TEXT = "Thinking..."
EXPIRED_TEXT = "The message expired. Please send it again."
NO_AGENT_TEXT = "Sorry, no virtual agents are available right now. Please try again later."


class DispatchEngine:
    """
    Per-message decision procedure: ignore, run a command, count a miss and
    offer escalation, or continue an AI conversation already in progress.

    Every reply goes through the gateway; nothing here raises to the caller
    except programming errors.
    """

    def __init__(
        self,
        *,
        dedupe: EventDeduplicator,
        states: ConversationStateStore,
        history: ConversationHistoryStore,
        chain: AiProviderChain,
        registry: CommandRegistry,
        gateway: SlackGateway,
        tokens: SlackTokenStore,
        interactions: InteractionLogger | None = None,
        command_prefix: str = "!",
        max_attempts: int = 3,
    ):
        self.dedupe = dedupe
        self.states = states
        self.history = history
        self.chain = chain
        self.registry = registry
        self.gateway = gateway
        self.tokens = tokens
        self.interactions = interactions
        self.prefix = str(command_prefix or "!")
        self.max_attempts = max(1, int(max_attempts))

    # ---- inbound messages ----

    def handle_event(self, event: SlackMessageEvent) -> None:
        if event.type not in _HANDLED_EVENT_TYPES:
            return
        # Edits, joins and other subtypes are not user input.
        if event.is_from_bot or event.subtype or not event.user:
            return
        if not self.dedupe.mark_if_new(event.event_id):
            log.info("slack_event_duplicate", event_id=event.event_id)
            return

        token = self.tokens.get_access_token(event.team_id)
        if not token:
            log.warning("slack_event_no_token", team_id=event.team_id, event_id=event.event_id)
            return

        raw = str(event.text or "")
        stripped = _MENTION_RE.sub("", raw)
        mentioned = stripped != raw
        text = stripped.strip()
        if not text:
            return
        addressed = event.type == "app_mention" or mentioned

        key = ThreadKey.for_message(
            team_id=event.team_id,
            user_id=event.user,
            channel=event.channel,
            ts=event.ts,
            thread_ts=event.thread_ts,
        )

        if event.in_thread and self.states.get(key).in_ai_mode:
            message = text[len(self.prefix) :].strip() if text.startswith(self.prefix) else text
            log.info("dispatch_ai_mode_message", thread_key=str(key))
            self._reply_with_ai(token, key, message or text)
            return

        if not text.startswith(self.prefix):
            if not addressed:
                return
            text = f"{self.prefix}{text}"

        parts = text.split(None, 1)
        command_key = parts[0].lower()
        args = parts[1].strip() if len(parts) > 1 else ""
        if command_key == self.prefix:
            return

        if self.registry.has(command_key):
            self._run_command(key, command_key, args, event, token)
            return

        self._count_miss(key, command_key, text[len(self.prefix) :].strip(), token, event)

    def _run_command(
        self,
        key: ThreadKey,
        command_key: str,
        args: str,
        event: SlackMessageEvent,
        token: str,
    ) -> None:
        previous: list[ConversationState] = []

        def _reset(s: ConversationState) -> ConversationState:
            previous.append(s)
            return s.reset()

        self.states.update(key, _reset)
        if previous and previous[0].in_ai_mode:
            self.history.deactivate(key)
        self.registry.try_execute(command_key, args, event, token, event.team_id)

    def _count_miss(
        self,
        key: ThreadKey,
        command_key: str,
        message: str,
        token: str,
        event: SlackMessageEvent,
    ) -> None:
        limit = self.max_attempts

        def _miss(s: ConversationState) -> ConversationState:
            nxt = s.record_unmatched(max_attempts=limit)
            if nxt.attempt_count >= limit:
                return nxt.with_pending(message=message, thread_anchor=key.thread_anchor)
            return nxt

        state = self.states.update(key, _miss)
        attempts = state.attempt_count
        log.info("command_not_found", thread_key=str(key), command=command_key, attempts=attempts)
        if self.interactions is not None:
            self.interactions.record(
                team_id=key.team_id,
                user_id=key.user_id,
                kind=KIND_COMMAND,
                detail=command_key,
                success=False,
                meta={"attempts": attempts, "channel": key.channel},
            )

        if attempts < limit:
            self.gateway.send_text(
                token,
                event.channel,
                f"Command '{command_key}' not found. ({attempts}/{limit} attempts)",
                key.thread_anchor,
            )
            return

        self.gateway.send_blocks(
            token,
            event.channel,
            confirmation_blocks(command_key=command_key, attempts=attempts, thread_key=str(key)),
            key.thread_anchor,
            text=confirmation_text(command_key=command_key, attempts=attempts),
        )

    # ---- escalation buttons ----

    def handle_interactive_callback(self, action_id: str, payload: InteractionPayload) -> None:
        try:
            key = ThreadKey.parse(payload.value)
        except ValueError:
            log.warning("interactive_invalid_thread_key", action_id=action_id, value=payload.value)
            return

        token = self.tokens.get_access_token(payload.team_id or key.team_id)
        if not token:
            log.warning("interactive_no_token", team_id=payload.team_id or key.team_id)
            return

        if action_id == ACTION_CONFIRM_AI:
            ok = self._accept(key, token)
        elif action_id == ACTION_DECLINE_AI:
            ok = self._decline(key, token)
        else:
            log.info("interactive_action_ignored", action_id=action_id)
            return

        if self.interactions is not None:
            self.interactions.record(
                team_id=key.team_id,
                user_id=payload.user_id or key.user_id,
                kind=KIND_BUTTON,
                detail=action_id,
                success=ok,
                meta={"threadKey": str(key)},
            )

    def _accept(self, key: ThreadKey, token: str) -> bool:
        taken: list[PendingEscalation] = []

        def _take(s: ConversationState) -> ConversationState:
            if s.pending_escalation is None:
                return s
            taken.append(s.pending_escalation)
            return s.accept()

        self.states.update(key, _take)
        if not taken:
            log.info("escalation_expired", thread_key=str(key), action="accept")
            self.gateway.send_text(token, key.channel, EXPIRED_TEXT, key.thread_anchor or None)
            return False

        pending = taken[0]
        log.info("escalation_accepted", thread_key=str(key))
        self.gateway.send_text(
            token, key.channel, "You chose to talk to the virtual agent.", pending.thread_anchor
        )
        self.gateway.send_text(token, key.channel, THINKING_TEXT, pending.thread_anchor)
        self._reply_with_ai(token, key, pending.message, thread_ts=pending.thread_anchor)
        return True

    def _decline(self, key: ThreadKey, token: str) -> bool:
        previous: list[ConversationState] = []

        def _reset(s: ConversationState) -> ConversationState:
            previous.append(s)
            return s.reset()

        self.states.update(key, _reset)
        prev = previous[0] if previous else ConversationState()
        if prev.in_ai_mode:
            self.history.deactivate(key)

        if prev.pending_escalation is None:
            log.info("escalation_expired", thread_key=str(key), action="decline")
            self.gateway.send_text(token, key.channel, EXPIRED_TEXT, key.thread_anchor or None)
            return False

        log.info("escalation_declined", thread_key=str(key))
        self.gateway.send_text(
            token,
            key.channel,
            "You chose not to use the virtual agent. "
            f"You can try commands {self.max_attempts} more times.",
            prev.pending_escalation.thread_anchor,
        )
        return True

    # ---- AI replies ----

    def _reply_with_ai(self, token: str, key: ThreadKey, message: str, thread_ts: str | None = None) -> None:
        anchor = thread_ts or key.thread_anchor or None
        answer = self.chain.respond(message, key)
        self.gateway.send_text(token, key.channel, answer or NO_AGENT_TEXT, anchor)

    # ---- administration ----

    def deactivate_thread(self, thread_key: ThreadKey | str) -> bool:
        """
        Turn AI mode off for a thread and retire its stored history.

        Returns True if the thread was in AI mode.
        """
        key = thread_key if isinstance(thread_key, ThreadKey) else ThreadKey.parse(thread_key)
        previous: list[ConversationState] = []

        def _reset(s: ConversationState) -> ConversationState:
            previous.append(s)
            return s.reset()

        self.states.update(key, _reset)
        self.history.deactivate(key)
        was_active = bool(previous and previous[0].in_ai_mode)
        log.info("thread_deactivated", thread_key=str(key), was_ai_mode=was_active)
        return was_active
