from __future__ import annotations

from dataclasses import dataclass

_SEP = "_"


@dataclass(frozen=True, slots=True)
class ThreadKey:
    """
    Identity of one conversation: team, user, channel and thread anchor.

    Serialized as ``<team>_<user>_<channel>_<anchor>``. Slack ids never contain
    underscores, and the anchor is a Slack ``ts`` (digits and a dot), so the
    string form round-trips.
    """

    team_id: str
    user_id: str
    channel: str
    thread_anchor: str

    def __str__(self) -> str:
        return _SEP.join((self.team_id, self.user_id, self.channel, self.thread_anchor))

    @classmethod
    def for_message(
        cls,
        *,
        team_id: str,
        user_id: str,
        channel: str,
        ts: str,
        thread_ts: str | None = None,
    ) -> ThreadKey:
        # Messages outside a thread anchor on their own ts: a reply to them lands in the same key.
        anchor = str(thread_ts or "").strip() or str(ts or "").strip()
        return cls(
            team_id=str(team_id or "").strip(),
            user_id=str(user_id or "").strip(),
            channel=str(channel or "").strip(),
            thread_anchor=anchor,
        )

    @classmethod
    def parse(cls, raw: str) -> ThreadKey:
        parts = str(raw or "").strip().split(_SEP, 3)
        if len(parts) < 3 or not all(parts[:3]):
            raise ValueError(f"invalid thread key: {raw!r}")
        anchor = parts[3] if len(parts) > 3 else ""
        return cls(team_id=parts[0], user_id=parts[1], channel=parts[2], thread_anchor=anchor)
