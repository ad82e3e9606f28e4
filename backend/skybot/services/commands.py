from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..domain.slack_events import SlackMessageEvent
from ..observability.logging import get_logger
from .interaction_log import KIND_COMMAND, InteractionLogger
from .slack_web import SlackGateway

log = get_logger("commands")


@dataclass(frozen=True, slots=True)
class CommandContext:
    event: SlackMessageEvent
    args: str
    access_token: str
    team_id: str
    thread_ts: str | None


CommandHandler = Callable[[CommandContext], str | None]


@dataclass(frozen=True, slots=True)
class _Command:
    name: str
    handler: CommandHandler
    description: str


class CommandRegistry:
    """
    Marker-prefixed commands (``!ping``) keyed case-insensitively.

    A handler returns the reply text (or None for no reply); the registry
    posts it in the thread the command came from.
    """

    def __init__(
        self,
        *,
        gateway: SlackGateway,
        prefix: str = "!",
        interactions: InteractionLogger | None = None,
    ):
        self.prefix = str(prefix or "!")
        self._gateway = gateway
        self._interactions = interactions
        self._commands: dict[str, _Command] = {}

    def _key(self, name: str) -> str:
        n = str(name or "").strip().lower()
        return n if n.startswith(self.prefix) else f"{self.prefix}{n}"

    def register(self, name: str, handler: CommandHandler, description: str = "") -> None:
        key = self._key(name)
        self._commands[key] = _Command(name=key, handler=handler, description=description)

    def has(self, command_key: str) -> bool:
        return self._key(command_key) in self._commands

    def help_text(self) -> str:
        lines = ["*Available commands*"]
        for cmd in sorted(self._commands.values(), key=lambda c: c.name):
            lines.append(f"- `{cmd.name}` {cmd.description}".rstrip())
        return "\n".join(lines)

    def try_execute(
        self,
        command_key: str,
        args: str,
        event: SlackMessageEvent,
        access_token: str,
        team_id: str,
    ) -> bool:
        """Run the command if it exists. False means "no such command"."""
        cmd = self._commands.get(self._key(command_key))
        if cmd is None:
            return False

        thread_ts = event.thread_ts or event.ts or None
        ctx = CommandContext(event=event, args=args, access_token=access_token, team_id=team_id, thread_ts=thread_ts)
        ok = True
        try:
            reply = cmd.handler(ctx)
            if reply:
                ok = self._gateway.send_text(access_token, event.channel, reply, thread_ts)
        except Exception as e:
            ok = False
            log.exception("command_failed", command=cmd.name, team_id=team_id, error=str(e) or "unknown_error")

        log.info("command_executed", command=cmd.name, team_id=team_id, user=event.user, ok=ok)
        if self._interactions is not None:
            self._interactions.record(
                team_id=team_id,
                user_id=event.user,
                kind=KIND_COMMAND,
                detail=cmd.name,
                success=ok,
                meta={"channel": event.channel, "args": args or None},
            )
        return True


def _now_in(tz_name: str) -> datetime:
    try:
        return datetime.now(ZoneInfo(tz_name))
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("command_time_unknown_timezone", timezone=tz_name)
        return datetime.now(timezone.utc)


def build_default_registry(
    *,
    gateway: SlackGateway,
    prefix: str = "!",
    timezone_name: str = "UTC",
    interactions: InteractionLogger | None = None,
) -> CommandRegistry:
    reg = CommandRegistry(gateway=gateway, prefix=prefix, interactions=interactions)
    reg.register("help", lambda _ctx: reg.help_text(), "list the available commands")
    reg.register("ping", lambda _ctx: "pong!", "check that the bot is alive")
    reg.register(
        "time",
        lambda _ctx: f"Current time: {_now_in(timezone_name).strftime('%Y-%m-%d %H:%M:%S %Z')}",
        "show the current time",
    )
    return reg
