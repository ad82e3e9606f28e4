from __future__ import annotations

import threading

from cachetools import TTLCache

from ..observability.logging import get_logger
from ..repositories import slack_tokens_repo
from ..settings import settings
from .slack_secrets import get_secret_str

log = get_logger("slack_tokens")

_TOKEN_CACHE_TTL_SECONDS = 300


class SlackTokenStore:
    """
    Bot access token per workspace.

    Installed workspaces have a row in the token table. Single-workspace
    deployments skip the table and configure SLACK_BOT_TOKEN instead.
    """

    def __init__(self, *, ttl_seconds: int = _TOKEN_CACHE_TTL_SECONDS, maxsize: int = 1024):
        self._cache: TTLCache[str, str] = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        self._lock = threading.Lock()

    def _fallback_token(self) -> str | None:
        return (str(settings.slack_bot_token or "").strip() or None) or get_secret_str("SLACK_BOT_TOKEN")

    def get_access_token(self, team_id: str) -> str | None:
        tid = str(team_id or "").strip()
        if not tid:
            return None

        with self._lock:
            hit = self._cache.get(tid)
        if hit:
            return hit

        token: str | None = None
        try:
            rec = slack_tokens_repo.get_token(team_id=tid)
            token = str((rec or {}).get("accessToken") or "").strip() or None
        except Exception as e:
            log.warning("slack_token_lookup_failed", team_id=tid, error=str(e) or "unknown_error")

        token = token or self._fallback_token()
        if token:
            with self._lock:
                self._cache[tid] = token
        else:
            log.info("slack_token_missing", team_id=tid)
        return token
