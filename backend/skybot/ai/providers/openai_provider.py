from __future__ import annotations

from typing import Any

from openai import OpenAI

from ...settings import Settings
from .base import AiNotConfigured, AiProvider, AiUpstreamError, ChatTurn, clip

# Guard against accidentally sending huge prompts (which can time out or explode costs).
_MAX_CONTENT_CHARS = 12_000


class OpenAiProvider(AiProvider):
    name = "openai"

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def configured(self) -> bool:
        return bool(str(self._settings.openai_api_key or "").strip())

    def _client(self) -> Any:
        if not self.configured:
            raise AiNotConfigured("OPENAI_API_KEY not configured")
        # The chain falls through to the next provider on failure; keep SDK retries off.
        return OpenAI(
            api_key=self._settings.openai_api_key,
            max_retries=0,
            timeout=max(5, int(self._settings.openai_timeout_seconds or 30)),
        )

    def _messages(self, message: str, system_prompt: str, history: list[ChatTurn]) -> list[dict[str, str]]:
        out: list[dict[str, str]] = [{"role": "system", "content": clip(system_prompt, _MAX_CONTENT_CHARS)}]
        for turn in history or []:
            out.append({"role": turn.role, "content": clip(turn.content, _MAX_CONTENT_CHARS)})
        out.append({"role": "user", "content": clip(message, _MAX_CONTENT_CHARS)})
        return out

    def respond(self, message: str, system_prompt: str, history: list[ChatTurn]) -> str | None:
        client = self._client()
        try:
            resp = client.chat.completions.create(
                model=self._settings.openai_model,
                messages=self._messages(message, system_prompt, history),
                max_tokens=int(self._settings.openai_max_output_tokens),
                temperature=float(self._settings.ai_temperature),
            )
        except Exception as e:
            raise AiUpstreamError(f"openai request failed: {e}") from e

        choices = getattr(resp, "choices", None) or []
        if not choices:
            return None
        content = getattr(getattr(choices[0], "message", None), "content", None)
        return content.strip() if isinstance(content, str) else None
