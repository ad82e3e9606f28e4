from __future__ import annotations

import json
import time
from typing import Any

import boto3

from ..observability.logging import get_logger
from ..settings import settings

log = get_logger("slack_secrets")

# Slack credentials rarely change; avoid a Secrets Manager round-trip per event.
_CACHE_TTL_SECONDS = 60
_cache_value: dict[str, Any] | None = None
_cache_at: float = 0.0


def get_slack_secret(*, force_refresh: bool = False) -> dict[str, Any] | None:
    arn = str(settings.slack_secret_arn or "").strip()
    if not arn:
        return None

    global _cache_value, _cache_at
    now = time.time()
    if (not force_refresh) and _cache_value is not None and (now - _cache_at) < _CACHE_TTL_SECONDS:
        return _cache_value

    try:
        sm = boto3.client("secretsmanager", region_name=settings.aws_region)
        raw = sm.get_secret_value(SecretId=arn).get("SecretString")
        obj = json.loads(raw) if isinstance(raw, str) and raw.strip() else None
    except Exception as e:
        log.warning("slack_secret_fetch_failed", error=str(e) or "unknown_error")
        return None

    _cache_value = obj if isinstance(obj, dict) else None
    _cache_at = now
    return _cache_value


def get_secret_str(key: str) -> str | None:
    sec = get_slack_secret()
    if not sec:
        return None
    v = sec.get(key)
    s = str(v).strip() if v is not None else ""
    return s or None


def get_signing_secret() -> str | None:
    return (str(settings.slack_signing_secret or "").strip() or None) or get_secret_str(
        "SLACK_SIGNING_SECRET"
    )
