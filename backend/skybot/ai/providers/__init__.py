from __future__ import annotations

from ...settings import Settings
from .base import AiError, AiNotConfigured, AiProvider, AiUpstreamError, ChatTurn
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAiProvider

_FACTORIES = {
    OpenAiProvider.name: OpenAiProvider,
    GeminiProvider.name: GeminiProvider,
}


def build_providers(settings: Settings) -> list[AiProvider]:
    """Providers in AI_PROVIDER_ORDER, highest priority first."""
    return [_FACTORIES[name](settings) for name in settings.ai_provider_names if name in _FACTORIES]


__all__ = [
    "AiError",
    "AiNotConfigured",
    "AiProvider",
    "AiUpstreamError",
    "ChatTurn",
    "GeminiProvider",
    "OpenAiProvider",
    "build_providers",
]
