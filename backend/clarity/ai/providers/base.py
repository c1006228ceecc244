from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ChatMessage:
    role: str  # system | user | assistant
    content: str


@dataclass(frozen=True)
class CompletionError(RuntimeError):
    status_code: int | None
    message: str

    def __str__(self) -> str:
        prefix = f"Completion error ({self.status_code})" if self.status_code is not None else "Completion error"
        return f"{prefix}: {self.message}"


class ChatProvider(Protocol):
    name: str

    async def chat(self, messages: list[ChatMessage], *, json_mode: bool = False) -> str: ...
