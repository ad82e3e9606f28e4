from __future__ import annotations

from typing import Any

import httpx

from ..observability.logging import get_logger

log = get_logger("slack")

_SLACK_API = "https://slack.com/api"
_TIMEOUT_SECONDS = 10.0


def slack_api_post(*, access_token: str, method: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Call a Slack Web API POST endpoint, returning its decoded JSON payload.

    Transport failures come back as ``{"ok": False, "error": ...}`` rather than
    raising, the same shape Slack uses for API-level errors.
    """
    tok = str(access_token or "").strip()
    if not tok:
        return {"ok": False, "error": "missing_token"}

    m = str(method or "").strip().lstrip("/")
    if not m:
        return {"ok": False, "error": "invalid_method"}

    try:
        resp = httpx.post(
            f"{_SLACK_API}/{m}",
            headers={"Authorization": f"Bearer {tok}"},
            json=json or {},
            timeout=_TIMEOUT_SECONDS,
        )
        data = resp.json() if resp.content else {}
        if not isinstance(data, dict):
            return {"ok": False, "error": "invalid_response"}
        return data
    except Exception as e:
        log.warning("slack_api_post_exception", method=m, error=str(e) or "unknown_error")
        return {"ok": False, "error": "request_failed"}


class SlackGateway:
    """Outbound replies via chat.postMessage. Failures are logged and reported as False."""

    def _post(self, access_token: str, body: dict[str, Any]) -> bool:
        resp = slack_api_post(access_token=access_token, method="chat.postMessage", json=body)
        if not bool(resp.get("ok")):
            log.warning(
                "slack_post_message_failed",
                channel=body.get("channel"),
                thread_ts=body.get("thread_ts"),
                error=resp.get("error"),
            )
            return False
        return True

    def send_text(self, access_token: str, channel: str, text: str, thread_ts: str | None = None) -> bool:
        body: dict[str, Any] = {"channel": channel, "text": str(text or "")}
        if thread_ts:
            body["thread_ts"] = thread_ts
        return self._post(access_token, body)

    def send_blocks(
        self,
        access_token: str,
        channel: str,
        blocks: list[dict[str, Any]],
        thread_ts: str | None = None,
        text: str | None = None,
    ) -> bool:
        # `text` is the notification/fallback string for clients that cannot render blocks.
        body: dict[str, Any] = {"channel": channel, "blocks": list(blocks or []), "text": str(text or " ")}
        if thread_ts:
            body["thread_ts"] = thread_ts
        return self._post(access_token, body)
