from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any
from urllib.parse import parse_qs

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from pydantic import BaseModel, Field

from ..domain.slack_events import InteractionPayload, SlackMessageEvent
from ..domain.threads import ThreadKey
from ..observability.logging import get_logger
from ..services.bot_runtime import get_runtime
from ..services.slack_secrets import get_signing_secret
from ..settings import settings

router = APIRouter(tags=["integrations"])
log = get_logger("integrations_slack")

_REPLAY_WINDOW_SECONDS = 60 * 5


def _verify_slack_signature(
    *,
    body: bytes,
    timestamp: str | None,
    signature: str | None,
    request_id: str | None = None,
) -> None:
    if not bool(settings.slack_enabled):
        # Treat disabled integrations as "not available" rather than auth failure.
        log.info("slack_request_rejected_integration_disabled", request_id=request_id)
        raise HTTPException(status_code=503, detail="Slack integration disabled")

    secret = get_signing_secret()
    if not secret:
        log.warning("slack_request_rejected_not_configured", request_id=request_id)
        raise HTTPException(status_code=503, detail="Slack not configured")

    ts = str(timestamp or "").strip()
    sig = str(signature or "").strip()
    if not ts or not sig:
        log.info(
            "slack_request_rejected_missing_signature_headers",
            request_id=request_id,
            has_timestamp=bool(ts),
            has_signature=bool(sig),
        )
        raise HTTPException(status_code=401, detail="Invalid Slack signature")

    try:
        ts_i = int(ts)
    except ValueError:
        log.info("slack_request_rejected_invalid_timestamp", request_id=request_id)
        raise HTTPException(status_code=401, detail="Invalid Slack signature")

    now = int(time.time())
    if abs(now - ts_i) > _REPLAY_WINDOW_SECONDS:
        log.info("slack_request_rejected_replay_window", request_id=request_id, now=now, timestamp=ts_i)
        raise HTTPException(status_code=401, detail="Invalid Slack signature")

    base = b"v0:" + ts.encode("utf-8") + b":" + (body or b"")
    digest = hmac.new(secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(f"v0={digest}", sig):
        log.info(
            "slack_request_rejected_signature_mismatch",
            request_id=request_id,
            body_len=len(body or b""),
        )
        raise HTTPException(status_code=401, detail="Invalid Slack signature")


def _request_id(request: Request) -> str | None:
    rid = getattr(getattr(request, "state", None), "request_id", None)
    return str(rid) if rid else None


async def _require_slack_request(request: Request) -> bytes:
    body = await request.body()
    _verify_slack_signature(
        body=body,
        timestamp=request.headers.get("X-Slack-Request-Timestamp"),
        signature=request.headers.get("X-Slack-Signature"),
        request_id=_request_id(request),
    )
    return body


@router.post("/slack/events")
async def slack_events(request: Request, background_tasks: BackgroundTasks) -> dict[str, Any]:
    # Validate the signature, then ACK quickly; dispatch runs after the response.
    body = await _require_slack_request(request)
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    if payload.get("type") == "url_verification":
        return {"challenge": payload.get("challenge")}

    if payload.get("type") == "event_callback":
        event = SlackMessageEvent.from_envelope(payload)
        if event is not None:
            log.info(
                "slack_event_received",
                request_id=_request_id(request),
                event_id=event.event_id,
                event_type=event.type,
                retry_num=str(request.headers.get("X-Slack-Retry-Num") or "").strip() or None,
            )
            background_tasks.add_task(get_runtime().engine.handle_event, event)

    return {"ok": True}


@router.post("/slack/interactions")
async def slack_interactions(request: Request, background_tasks: BackgroundTasks) -> dict[str, Any]:
    body = await _require_slack_request(request)
    form = parse_qs(body.decode("utf-8", errors="replace"))
    raw = (form.get("payload") or [""])[0]
    try:
        payload = json.loads(raw) if raw else {}
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid interaction payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid interaction payload")

    if payload.get("type") == "block_actions":
        engine = get_runtime().engine
        actions = payload.get("actions") if isinstance(payload.get("actions"), list) else []
        for action in actions:
            if not isinstance(action, dict):
                continue
            action_id = str(action.get("action_id") or "").strip()
            if not action_id:
                continue
            background_tasks.add_task(
                engine.handle_interactive_callback,
                action_id,
                InteractionPayload.from_block_action(payload, action),
            )

    return {"ok": True}


class DeactivateThreadRequest(BaseModel):
    thread_key: str = Field(alias="threadKey", min_length=1)


@router.post("/slack/threads/deactivate")
def deactivate_thread(body: DeactivateThreadRequest) -> dict[str, Any]:
    """
    Internal-only: turn AI mode off for a thread.

    There is no caller authentication here, so the route answers 404 unless
    SLACK_THREAD_ADMIN_ENABLED is set on a deployment that is not publicly
    reachable.
    """
    if not bool(settings.slack_thread_admin_enabled):
        raise HTTPException(status_code=404, detail="Not Found")
    try:
        key = ThreadKey.parse(body.thread_key)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid threadKey")
    was_ai_mode = get_runtime().engine.deactivate_thread(key)
    return {"ok": True, "threadKey": str(key), "wasAiMode": was_ai_mode}
