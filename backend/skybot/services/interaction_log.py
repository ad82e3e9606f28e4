from __future__ import annotations

from typing import Any

from ..observability.logging import get_logger
from ..repositories import interactions_repo

log = get_logger("interaction_log")

KIND_COMMAND = "command"
KIND_BUTTON = "button"
KIND_AGENT = "agent"


class InteractionLogger:
    """Audit trail of commands, button presses and AI exchanges. Never raises."""

    def record(
        self,
        *,
        team_id: str,
        user_id: str | None,
        kind: str,
        detail: str,
        success: bool,
        meta: dict[str, Any] | None = None,
    ) -> None:
        try:
            interactions_repo.append_interaction(
                team_id=team_id,
                user_id=str(user_id or ""),
                kind=kind,
                detail=detail,
                success=success,
                meta=meta,
            )
        except Exception as e:
            log.warning(
                "interaction_record_failed",
                team_id=team_id,
                kind=kind,
                error=str(e) or "unknown_error",
            )
