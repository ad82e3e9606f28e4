from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..db.dynamodb.table import get_main_table


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def token_key(team_id: str) -> dict[str, str]:
    tid = str(team_id or "").strip()
    if not tid:
        raise ValueError("team_id is required")
    return {"pk": f"SLACKTEAM#{tid}", "sk": "TOKEN"}


def get_token(*, team_id: str) -> dict[str, Any] | None:
    it = get_main_table().get_item(key=token_key(team_id))
    if not it:
        return None
    out = dict(it)
    for k in ("pk", "sk", "entityType"):
        out.pop(k, None)
    return out


def put_token(*, team_id: str, access_token: str, bot_user_id: str | None = None) -> dict[str, Any]:
    tok = str(access_token or "").strip()
    if not tok:
        raise ValueError("access_token is required")
    item: dict[str, Any] = {
        **token_key(team_id),
        "entityType": "SlackToken",
        "teamId": str(team_id).strip(),
        "accessToken": tok,
        "botUserId": str(bot_user_id).strip() if bot_user_id else None,
        "updatedAt": _now_iso(),
    }
    item = {k: v for k, v in item.items() if v is not None}
    get_main_table().put_item(item=item)
    return item
