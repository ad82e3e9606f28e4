from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def conversation_key(thread_key: str) -> dict[str, str]:
    tk = str(thread_key or "").strip()
    if not tk:
        raise ValueError("thread_key is required")
    return {"pk": f"AGENTCONV#{tk}", "sk": "PROFILE"}


def normalize(item: dict[str, Any] | None) -> dict[str, Any] | None:
    if not item:
        return None
    out = dict(item)
    for k in ("pk", "sk", "gsi1pk", "gsi1sk", "entityType"):
        out.pop(k, None)
    turns = out.get("turns")
    out["turns"] = turns if isinstance(turns, list) else []
    out["isActive"] = bool(out.get("isActive", True))
    return out


def get_conversation(*, thread_key: str) -> dict[str, Any] | None:
    it = get_main_table().get_item(key=conversation_key(thread_key))
    return normalize(it)


def upsert_conversation(
    *,
    thread_key: str,
    team_id: str,
    user_id: str,
    channel: str,
    thread_ts: str | None,
    turns: list[dict[str, str]],
    summary: str | None = None,
) -> dict[str, Any] | None:
    """
    Create the conversation on first save, overwrite its turns afterwards.

    Saving always re-activates the record. Deactivation already dropped the
    old summary, so a reactivated thread starts from the turns given here.
    A None summary leaves any stored summary untouched.
    """
    now = _now_iso()
    names = {"#turns": "turns", "#active": "isActive"}
    values: dict[str, Any] = {
        ":et": "AgentConversation",
        ":tk": str(thread_key),
        ":team": str(team_id or ""),
        ":user": str(user_id or ""),
        ":ch": str(channel or ""),
        ":turns": list(turns or []),
        ":mc": len(turns or []),
        ":now": now,
        ":true": True,
        ":g1pk": f"AGENTCONV_TEAM#{str(team_id or '').strip()}",
    }
    sets = [
        "entityType = :et",
        "threadKey = :tk",
        "teamId = :team",
        "userId = :user",
        "channel = :ch",
        "#turns = :turns",
        "messageCount = :mc",
        "lastInteractionAt = :now",
        "updatedAt = :now",
        "#active = :true",
        "startedAt = if_not_exists(startedAt, :now)",
        "gsi1pk = :g1pk",
        "gsi1sk = :now",
    ]
    if thread_ts:
        values[":ts"] = str(thread_ts)
        sets.append("threadTs = :ts")
    if summary is not None:
        values[":summary"] = str(summary)
        sets.append("summary = :summary")

    updated = get_main_table().update_item(
        key=conversation_key(thread_key),
        update_expression="SET " + ", ".join(sets),
        expression_attribute_names=names,
        expression_attribute_values=values,
    )
    return normalize(updated)


def deactivate_conversation(*, thread_key: str) -> bool:
    """
    Soft delete: the record stays for audit, it just stops feeding prompts.
    The summary is removed so a later reactivation does not inherit it.

    Returns False when there was nothing stored for the thread.
    """
    try:
        get_main_table().update_item(
            key=conversation_key(thread_key),
            update_expression="SET #active = :false, updatedAt = :now REMOVE summary",
            expression_attribute_names={"#active": "isActive"},
            expression_attribute_values={":false": False, ":now": _now_iso()},
            condition_expression="attribute_exists(pk)",
        )
        return True
    except DdbConflict:
        return False


def list_active_conversations(*, team_id: str, limit: int = 50) -> list[dict[str, Any]]:
    """Active conversations for a workspace, most recently used first."""
    tid = str(team_id or "").strip()
    if not tid:
        raise ValueError("team_id is required")
    pg = get_main_table().query_page(
        index_name="GSI1",
        key_condition_expression=Key("gsi1pk").eq(f"AGENTCONV_TEAM#{tid}"),
        scan_index_forward=False,
        limit=limit,
    )
    out: list[dict[str, Any]] = []
    for it in pg.items:
        norm = normalize(it)
        if norm and norm.get("isActive"):
            out.append(norm)
    return out
