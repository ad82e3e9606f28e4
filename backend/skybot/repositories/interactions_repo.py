from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from ..db.dynamodb.table import get_main_table


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def append_interaction(
    *,
    team_id: str,
    user_id: str,
    kind: str,
    detail: str,
    success: bool,
    meta: dict[str, Any] | None = None,
) -> dict[str, Any]:
    tid = str(team_id or "").strip() or "unknown"
    now = _now_iso()
    iid = uuid.uuid4().hex
    item: dict[str, Any] = {
        "pk": f"INTERACTION#{tid}",
        "sk": f"{now}#{iid}",
        "entityType": "Interaction",
        "interactionId": iid,
        "teamId": tid,
        "userId": str(user_id or "").strip() or "unknown",
        "kind": str(kind or "").strip(),
        "detail": str(detail or ""),
        "success": bool(success),
        "meta": {str(k): v for k, v in (meta or {}).items() if v is not None} or None,
        "createdAt": now,
    }
    item = {k: v for k, v in item.items() if v is not None}
    get_main_table().put_item(item=item)
    return item
