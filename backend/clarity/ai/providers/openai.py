from __future__ import annotations

import logging
import time

import httpx

from clarity.config.settings import ClaritySettings
from .base import ChatMessage, ChatProvider, CompletionError


_logger = logging.getLogger(__name__)


class OpenAIProvider(ChatProvider):
    """
    Chat-completions client for any OpenAI-compatible endpoint.

    One attempt per call; failures surface as `CompletionError`.
    """

    name = "openai"

    def __init__(self, settings: ClaritySettings) -> None:
        if not settings.openai_api_key:
            raise CompletionError(None, "OPENAI_API_KEY is not set")
        self.model = settings.openai_model
        self.temperature = settings.openai_temperature
        self.max_tokens = settings.openai_max_tokens
        self._client = httpx.AsyncClient(
            base_url=settings.openai_base_url,
            timeout=settings.openai_timeout_s,
            headers={"Authorization": f"Bearer {settings.openai_api_key}"},
        )

    @staticmethod
    def _raise_completion_error(res: httpx.Response) -> None:
        try:
            payload = res.json()
            message = payload.get("error", {}).get("message") or payload.get("message") or res.text
        except Exception:
            message = res.text
        raise CompletionError(res.status_code, str(message))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def chat(self, messages: list[ChatMessage], *, json_mode: bool = False) -> str:
        body = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": float(self.temperature),
            "max_tokens": int(self.max_tokens),
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        start = time.time()
        try:
            res = await self._client.post("/chat/completions", json=body)
        except httpx.HTTPError as exc:
            raise CompletionError(None, str(exc)) from exc
        elapsed_ms = int((time.time() - start) * 1000)
        _logger.info("completion status=%s model=%s ms=%s", res.status_code, self.model, elapsed_ms)
        if res.status_code >= 400:
            self._raise_completion_error(res)

        try:
            data = res.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise CompletionError(res.status_code, f"unexpected completion payload: {exc}") from exc
        return (content or "").strip()
