from __future__ import annotations

from functools import lru_cache

from clarity.ai.providers.base import ChatProvider
from clarity.ai.providers.openai import OpenAIProvider
from clarity.ai.providers.stub import StubProvider
from clarity.config.settings import get_settings


@lru_cache(maxsize=1)
def get_chat_provider() -> ChatProvider:
    settings = get_settings()
    if settings.ai_provider == "stub":
        return StubProvider()
    if settings.ai_provider == "openai":
        return OpenAIProvider(settings)
    raise RuntimeError(f"Unsupported CLARITY_AI_PROVIDER: {settings.ai_provider}")
