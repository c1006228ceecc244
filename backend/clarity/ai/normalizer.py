from __future__ import annotations

import re
import unicodedata

from clarity import schemas
from clarity.ai.classifier import (
    base_ingredient_from_message,
    looks_like_ingredient_query,
    normalize_verdict,
    resolve_mode,
)


_HARM_SUBSTANCES = {
    "tobacco",
    "nicotine",
    "alcohol",
    "ethanol",
    "cannabis",
    "weed",
    "marijuana",
    "vape",
    "vaping",
}

_DAO_HIDDEN = {"unknown", "unspecified"}
_CYCLE_HIDDEN = {"n/a", "unspecified"}

ENGAGEMENT_WELLNESS = "Want me to suggest a simple routine that fits feeding and sleep schedules?"
ENGAGEMENT_AVOID = "Want me to explain the specific risks for your baby and what to watch for?"
ENGAGEMENT_SAFE = "Want tips on typical amounts and timing around feeds?"
ENGAGEMENT_OTHER = "Want me to suggest gentler alternatives that are better studied while nursing?"

FOLLOWUPS_WELLNESS = [
    "Can you help me build a daily routine while breastfeeding?",
    "Do any of my current meds or supplements affect this?",
]
FOLLOWUPS_HARM = [
    "How long after use is it safer to breastfeed?",
    "What signs should I watch for in my baby?",
    "What support can help me cut back or quit?",
]
FOLLOWUPS_SAFE = [
    "What is a typical amount while breastfeeding?",
    "Is there a best time to take it around feeds?",
    "Are there any brands or forms to prefer?",
]
FOLLOWUPS_OTHER = [
    "What are safer alternatives while nursing?",
    "How much is considered low risk, if any?",
    "Should I talk to a lactation consultant about this?",
]

DEGRADED_FRIENDLY = (
    "I'm sorry, I couldn't put together a complete answer just now. "
    "You're asking exactly the right kind of question, and it's worth a careful look."
)
DEGRADED_SCIENTIFIC = "Evidence summaries are temporarily unavailable for this question."
DEGRADED_CLOSING = "Please check with your healthcare provider or a lactation consultant before making changes."
DEGRADED_FOLLOWUPS = [
    "Can you tell me more about what you're taking?",
    "Would you like general tips for checking ingredient safety?",
]


def slugify(name: str) -> str:
    value = unicodedata.normalize("NFKD", (name or "").lower())
    value = re.sub(r"[^\w\s-]", "", value)
    return re.sub(r"\s+", "-", value.strip())


def article_url(name: str, prefix: str = "/ingredients/") -> str | None:
    slug = slugify(name)
    if not slug:
        return None
    return f"{prefix}{slug}"


def build_engagement(verdict: str | None, mode: str) -> str:
    if mode == "wellness":
        return ENGAGEMENT_WELLNESS
    if verdict == "Avoid":
        return ENGAGEMENT_AVOID
    if verdict == "Safe":
        return ENGAGEMENT_SAFE
    return ENGAGEMENT_OTHER


def build_followups(base: str, verdict: str | None, mode: str) -> list[str]:
    if mode == "wellness":
        return list(FOLLOWUPS_WELLNESS)
    if (base or "").strip().lower() in _HARM_SUBSTANCES or verdict == "Avoid":
        return list(FOLLOWUPS_HARM)
    if verdict == "Safe":
        return list(FOLLOWUPS_SAFE)
    return list(FOLLOWUPS_OTHER)


def _is_sentinel(value: str | None, sentinels: set[str]) -> bool:
    return (value or "").strip().lower() in sentinels


def ui_from_record(
    record: schemas.StructuredRecord,
    message: str,
    *,
    prefix: str = "/ingredients/",
) -> schemas.CanonicalResponse:
    base = (record.name or "").strip() or base_ingredient_from_message(message)
    verdict = normalize_verdict(record.verdict)
    return schemas.CanonicalResponse(
        mode="ingredient",
        header=base,
        base=base,
        article_url=article_url(base, prefix),
        verdict_normalized=verdict,
        hide_fields=schemas.HideFields(
            dao=_is_sentinel(record.dao_histamine_signal, _DAO_HIDDEN),
            cycle=_is_sentinel(record.cycle_flag, _CYCLE_HIDDEN),
        ),
        show_chip=verdict is not None,
        engagement=build_engagement(verdict, "ingredient"),
        followups=build_followups(base, verdict, "ingredient"),
    )


def ui_from_generated(
    result: schemas.GenerativeResult,
    message: str,
    *,
    degraded: bool = False,
    prefix: str = "/ingredients/",
) -> schemas.CanonicalResponse:
    mode = resolve_mode(message, result.mode)
    base = base_ingredient_from_message(message)
    ingredient_like = looks_like_ingredient_query(message)

    verdict = normalize_verdict(result.verdict)
    if verdict is None and not degraded and mode == "ingredient" and ingredient_like:
        verdict = normalize_verdict(" ".join(filter(None, [result.friendly, result.scientific])))
    if mode == "wellness":
        verdict = None

    followups = result.followups[:3] or build_followups(base, verdict, mode)
    return schemas.CanonicalResponse(
        mode=mode,
        header=result.title or base,
        base=base,
        article_url=article_url(base, prefix) if (mode == "ingredient" and ingredient_like) else None,
        verdict_normalized=verdict,
        hide_fields=schemas.HideFields(dao=True, cycle=True),
        show_chip=mode == "ingredient" and verdict is not None,
        engagement=build_engagement(verdict, mode),
        followups=followups,
    )


def degraded_result(message: str) -> schemas.GenerativeResult:
    msg = (message or "").strip()
    return schemas.GenerativeResult(
        mode=resolve_mode(msg),
        title=msg[:60],
        verdict=None,
        friendly=DEGRADED_FRIENDLY,
        scientific=DEGRADED_SCIENTIFIC,
        closing=DEGRADED_CLOSING,
        followups=list(DEGRADED_FOLLOWUPS),
        cross_reactivity=None,
    )


def record_answer_text(record: schemas.StructuredRecord) -> str:
    dao = record.dao_histamine_signal or "N/A"
    cycle = record.cycle_flag or "N/A"
    citations = ", ".join(record.citations) if record.citations else "None"
    return (
        f"Ingredient: {record.name or ''}\n"
        f"Verdict: {record.verdict or ''}\n"
        f"DAO/Histamine: {dao}\n"
        f"Cycle: {cycle} ({record.cycle_notes or ''})\n"
        f"Citations: {citations}"
    )
