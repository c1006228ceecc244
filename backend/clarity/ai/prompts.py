from __future__ import annotations

from clarity import schemas
from clarity.ai.providers.base import ChatMessage


SYSTEM_PROMPT = (
    "You are Clarity, an ingredient safety assistant for maternal, infant, and breastfeeding health.\n"
    "Tone: warm, clear, parent-friendly. Never shame or alarm. If evidence is uncertain, say so briefly and suggest next steps.\n"
    "You are not a doctor. Do not diagnose. Encourage checking with a healthcare provider for personal decisions.\n"
    "\n"
    "Decide the mode:\n"
    "- ingredient: the user asks whether a food, drink, herb, supplement, medicine ingredient or substance is safe.\n"
    "- wellness: anything else (sleep, mood, routines, recovery, general wellbeing).\n"
    "\n"
    "Return STRICT JSON only. No prose. No markdown. No code fences.\n"
    "Schema:\n"
    "{\n"
    '  "mode": "ingredient|wellness",\n'
    '  "title": string,\n'
    '  "verdict": "Safe|Caution|Avoid"|null,\n'
    '  "friendly": string,\n'
    '  "scientific": string,\n'
    '  "closing": string,\n'
    '  "followups": [string],\n'
    '  "cross_reactivity": string|null\n'
    "}\n"
    "\n"
    "Rules:\n"
    "- verdict is null in wellness mode.\n"
    "- friendly: 2-4 short sentences a tired parent can skim.\n"
    "- scientific: 1-3 sentences on mechanism or evidence (transfer to milk, infant exposure, DAO/histamine if relevant).\n"
    "- closing: one encouraging sentence.\n"
    "- followups: 2-3 short questions the parent might ask next.\n"
)

_VOICES = {
    "best_friend": "Voice: talk like a supportive best friend who happens to know the research.",
    "clinical": "Voice: concise and clinical, like a lactation pharmacist.",
}


def build_system_prompt() -> str:
    return SYSTEM_PROMPT


def trim_history(
    history: list[schemas.HistoryTurn],
    *,
    turns: int = 3,
    max_chars: int = 400,
) -> list[schemas.HistoryTurn]:
    if turns <= 0:
        return []
    kept = [t for t in history if t.role in {"user", "assistant"} and t.content.strip()][-turns:]
    return [schemas.HistoryTurn(role=t.role, content=t.content.strip()[:max_chars]) for t in kept]


def build_user_prompt(
    message: str,
    history: list[schemas.HistoryTurn] | None = None,
    voice: str | None = None,
) -> str:
    parts = [f"QUESTION:\n{message.strip()}\n"]
    if history:
        lines = [f"{t.role}: {t.content}" for t in history]
        parts.append("RECENT CONVERSATION (for continuity only):\n" + "\n".join(lines) + "\n")
    voice_line = _VOICES.get((voice or "").strip().lower())
    if voice_line:
        parts.append(voice_line + "\n")
    parts.append(
        "Formatting:\n"
        "- Answer the QUESTION, using the conversation only to resolve references like 'it' or 'that'.\n"
        "- title: the ingredient or topic in a few words.\n"
        "- Return the JSON object described in the instructions and nothing else."
    )
    return "\n".join(parts)


def build_messages(
    query: schemas.ClarityIn,
    *,
    history_turns: int = 3,
    history_chars: int = 400,
) -> list[ChatMessage]:
    history = trim_history(query.history, turns=history_turns, max_chars=history_chars)
    return [
        ChatMessage(role="system", content=build_system_prompt()),
        ChatMessage(role="user", content=build_user_prompt(query.message, history, query.mode)),
    ]
