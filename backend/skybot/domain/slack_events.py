from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class SlackMessageEvent:
    """Normalized Slack message event, already lifted out of the callback envelope."""

    event_id: str | None
    team_id: str
    type: str
    channel: str
    user: str | None = None
    text: str | None = None
    ts: str = ""
    thread_ts: str | None = None
    subtype: str | None = None
    bot_id: str | None = None

    @property
    def is_from_bot(self) -> bool:
        return self.subtype == "bot_message" or bool(self.bot_id)

    @property
    def in_thread(self) -> bool:
        return bool(str(self.thread_ts or "").strip())

    @classmethod
    def from_envelope(cls, payload: dict[str, Any]) -> SlackMessageEvent | None:
        """
        Build from a Slack ``event_callback`` envelope; None when there is no inner event.
        """
        raw = payload.get("event")
        event = raw if isinstance(raw, dict) else None
        if not event:
            return None

        def _opt(v: Any) -> str | None:
            s = str(v or "").strip()
            return s or None

        team_id = _opt(payload.get("team_id")) or _opt(event.get("team")) or ""
        return cls(
            event_id=_opt(payload.get("event_id")),
            team_id=team_id,
            type=str(event.get("type") or "").strip(),
            channel=str(event.get("channel") or "").strip(),
            user=_opt(event.get("user")),
            text=str(event.get("text") or ""),
            ts=str(event.get("ts") or "").strip(),
            thread_ts=_opt(event.get("thread_ts")),
            subtype=_opt(event.get("subtype")),
            bot_id=_opt(event.get("bot_id")),
        )


@dataclass(frozen=True, slots=True)
class InteractionPayload:
    """The parts of a Slack ``block_actions`` payload the escalation buttons need."""

    team_id: str
    user_id: str
    value: str
    channel: str | None = None

    @classmethod
    def from_block_action(cls, payload: dict[str, Any], action: dict[str, Any]) -> InteractionPayload:
        team = payload.get("team") if isinstance(payload.get("team"), dict) else {}
        user = payload.get("user") if isinstance(payload.get("user"), dict) else {}
        channel = payload.get("channel") if isinstance(payload.get("channel"), dict) else {}
        return cls(
            team_id=str(team.get("id") or "").strip(),
            user_id=str(user.get("id") or "").strip(),
            value=str(action.get("value") or "").strip(),
            channel=str(channel.get("id") or "").strip() or None,
        )
