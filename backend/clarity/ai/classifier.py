from __future__ import annotations

import re
from typing import Literal


Mode = Literal["ingredient", "wellness"]
Verdict = Literal["Safe", "Caution", "Avoid"]

MODES = {"ingredient", "wellness"}

_INGREDIENT_KEYWORDS = {
    "ingredient",
    "supplement",
    "vitamin",
    "herb",
    "powder",
    "extract",
    "capsule",
    "tea",
    "food",
    "safe",
    "avoid",
    "caution",
}

# Checked before "safe" so mixed wording resolves conservatively.
_AVOID_PHRASES = ["avoid", "not safe", "not recommended", "discouraged", "harmful"]

_BASE_DELIMITER = re.compile(r"[-—:]")


def _tokens(message: str) -> list[str]:
    return [t.lower() for t in re.findall(r"[A-Za-z0-9']+", message or "") if t]


def looks_like_ingredient_query(message: str) -> bool:
    msg = (message or "").strip()
    if not msg:
        return False
    if len(msg.split()) == 1:
        return True
    return any(t in _INGREDIENT_KEYWORDS for t in _tokens(msg))


def base_ingredient_from_message(message: str) -> str:
    head = _BASE_DELIMITER.split(message or "", maxsplit=1)[0].strip()
    words = head.split()
    if len(words) <= 3:
        return head
    return " ".join(words[:3])


def normalize_verdict(text: str | None) -> Verdict | None:
    low = (text or "").strip().lower()
    if not low:
        return None
    if any(phrase in low for phrase in _AVOID_PHRASES):
        return "Avoid"
    if "safe" in low:
        return "Safe"
    return "Caution"


def resolve_mode(message: str, declared: str | None = None) -> Mode:
    declared_mode = (declared or "").strip().lower()
    if declared_mode in MODES:
        return declared_mode  # type: ignore[return-value]
    return "ingredient" if looks_like_ingredient_query(message) else "wellness"
