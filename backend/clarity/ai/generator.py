from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Union

from pydantic import ValidationError

from clarity import schemas
from clarity.ai.normalizer import degraded_result
from clarity.ai.prompts import build_messages
from clarity.ai.providers.base import ChatProvider


_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Parsed:
    result: schemas.GenerativeResult
    degraded: bool = False


@dataclass(frozen=True)
class Degraded:
    result: schemas.GenerativeResult
    reason: str
    degraded: bool = True


GenerationOutcome = Union[Parsed, Degraded]


def _extract_json_object(raw: str) -> str | None:
    cleaned = (raw or "").strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[-1]
        if "```" in cleaned:
            cleaned = cleaned.rsplit("```", 1)[0]
        cleaned = cleaned.strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return cleaned[start : end + 1]


def parse_generation(raw: str, message: str) -> GenerationOutcome:
    extracted = _extract_json_object(raw)
    if not extracted:
        return Degraded(degraded_result(message), "model did not return JSON")
    try:
        data = json.loads(extracted)
    except json.JSONDecodeError as exc:
        return Degraded(degraded_result(message), f"invalid JSON: {exc.msg}")
    if not isinstance(data, dict):
        return Degraded(degraded_result(message), "model JSON is not an object")
    try:
        return Parsed(schemas.GenerativeResult.model_validate(data))
    except ValidationError as exc:
        return Degraded(degraded_result(message), f"schema mismatch: {exc.error_count()} errors")


async def generate(
    provider: ChatProvider,
    query: schemas.ClarityIn,
    *,
    history_turns: int = 3,
    history_chars: int = 400,
) -> GenerationOutcome:
    messages = build_messages(query, history_turns=history_turns, history_chars=history_chars)
    # CompletionError propagates; only the model's text is allowed to degrade.
    raw = await provider.chat(messages, json_mode=True)
    outcome = parse_generation(raw, query.message)
    if isinstance(outcome, Degraded):
        _logger.warning("completion degraded provider=%s reason=%s", provider.name, outcome.reason)
    return outcome
