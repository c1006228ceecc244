from __future__ import annotations

import json
import re

from .base import ChatMessage, ChatProvider


class StubProvider(ChatProvider):
    """
    Deterministic provider for tests/dev when an external LLM is not configured.
    """

    name = "stub"

    async def chat(self, messages: list[ChatMessage], *, json_mode: bool = False) -> str:
        user = next((m.content for m in reversed(messages) if m.role == "user"), "")
        match = re.search(r"QUESTION:\n(.*?)\n\n", user, re.S)
        question = (match.group(1) if match else user).strip()
        wellness = bool(re.search(r"\b(sleep|tired|stress|anxious|mood|routine|exercise)\b", question.lower()))

        payload = {
            "mode": "wellness" if wellness else "ingredient",
            "title": question[:60] or "Your question",
            "verdict": None if wellness else "Use with caution",
            "friendly": "Here is what we know so far.",
            "scientific": "Evidence in lactation is limited.",
            "closing": "Check with your provider if you are unsure.",
            "followups": [],
            "cross_reactivity": None,
        }
        return json.dumps(payload, ensure_ascii=False)
