from __future__ import annotations

from typing import Any

import httpx

from ...settings import Settings
from .base import AiNotConfigured, AiProvider, AiUpstreamError, ChatTurn, clip

_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
_MAX_CONTENT_CHARS = 12_000


def _candidate_text(data: Any) -> str | None:
    if not isinstance(data, dict):
        raise AiUpstreamError("gemini returned a non-object body")
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return None
    chunks = [str(p.get("text") or "") for p in parts if isinstance(p, dict)]
    text = "".join(chunks).strip()
    return text or None


class GeminiProvider(AiProvider):
    name = "gemini"

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def configured(self) -> bool:
        return bool(str(self._settings.gemini_api_key or "").strip())

    def _payload(self, message: str, system_prompt: str, history: list[ChatTurn]) -> dict[str, Any]:
        contents: list[dict[str, Any]] = []
        for turn in history or []:
            # Gemini names the assistant side "model".
            role = "model" if turn.role == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": clip(turn.content, _MAX_CONTENT_CHARS)}]})
        contents.append({"role": "user", "parts": [{"text": clip(message, _MAX_CONTENT_CHARS)}]})
        return {
            "systemInstruction": {"parts": [{"text": clip(system_prompt, _MAX_CONTENT_CHARS)}]},
            "contents": contents,
            "generationConfig": {
                "temperature": float(self._settings.ai_temperature),
                "maxOutputTokens": int(self._settings.gemini_max_output_tokens),
            },
        }

    def respond(self, message: str, system_prompt: str, history: list[ChatTurn]) -> str | None:
        if not self.configured:
            raise AiNotConfigured("GEMINI_API_KEY not configured")

        url = f"{_BASE_URL}/{self._settings.gemini_model}:generateContent"
        try:
            resp = httpx.post(
                url,
                headers={"x-goog-api-key": str(self._settings.gemini_api_key)},
                json=self._payload(message, system_prompt, history),
                timeout=float(max(5, int(self._settings.gemini_timeout_seconds or 30))),
            )
        except httpx.HTTPError as e:
            raise AiUpstreamError(f"gemini request failed: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise AiUpstreamError(f"gemini returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise AiUpstreamError("gemini returned invalid JSON") from e
        return _candidate_text(data)
