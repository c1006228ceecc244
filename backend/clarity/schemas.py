from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# --------------------
# Request
# --------------------


class HistoryTurn(BaseModel):
    role: str
    content: str

    @field_validator("content", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return "" if value is None else str(value)


class ClarityIn(BaseModel):
    message: str
    mode: Optional[str] = None  # voice preference sent by the widget
    history: List[HistoryTurn] = Field(default_factory=list)
    page: int = 1

    @field_validator("mode", mode="before")
    @classmethod
    def _voice(cls, value: Any) -> Optional[str]:
        if not isinstance(value, str):
            return None
        return value.strip() or None

    @field_validator("history", mode="before")
    @classmethod
    def _drop_bad_turns(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [
            turn
            for turn in value
            if isinstance(turn, dict) and isinstance(turn.get("role"), str) and turn.get("content") is not None
        ]

    @field_validator("page", mode="before")
    @classmethod
    def _clamp_page(cls, value: Any) -> int:
        try:
            page = int(value)
        except (TypeError, ValueError):
            return 1
        return max(1, page)


class CheckIn(BaseModel):
    q: str = ""

    @field_validator("q", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()


# --------------------
# Structured store
# --------------------


class StructuredRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    verdict: Optional[str] = None
    dao_histamine_signal: Optional[str] = None
    cycle_flag: Optional[str] = None
    cycle_notes: Optional[str] = None
    citations: List[str] = Field(default_factory=list)
    cross_reactivity: Optional[str] = None
    hormone_modulation_note: Optional[str] = None
    dao_mechanism: Optional[str] = None
    dao_notes: Optional[str] = None
    trust_signals: Optional[Any] = None
    confidence: Optional[Any] = None
    source_type: Optional[str] = None
    group_root: Optional[str] = None
    why_brief: Optional[str] = None

    # Columns are loosely typed upstream (bool flags, numeric signals).
    @field_validator(
        "name",
        "verdict",
        "dao_histamine_signal",
        "cycle_flag",
        "cycle_notes",
        "cross_reactivity",
        "hormone_modulation_note",
        "dao_mechanism",
        "dao_notes",
        "source_type",
        "group_root",
        "why_brief",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return value
        return str(value).strip()

    @field_validator("citations", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value if v is not None and str(v).strip()]
        text = str(value).strip()
        return [text] if text else []


class Pagination(BaseModel):
    page: int
    page_size: int
    total: Optional[int] = None
    has_more: bool = False


# --------------------
# Generative fallback
# --------------------


class GenerativeResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    mode: Optional[str] = None
    title: str = ""
    verdict: Optional[str] = None
    friendly: str = ""
    scientific: str = ""
    closing: str = ""
    followups: List[str] = Field(default_factory=list)
    cross_reactivity: Optional[str] = None

    @field_validator("title", "friendly", "scientific", "closing", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("verdict", "cross_reactivity", mode="before")
    @classmethod
    def _nullable_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("followups", mode="before")
    @classmethod
    def _questions(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            return []
        return [str(v).strip() for v in value if v is not None and str(v).strip()]


# --------------------
# UI contract
# --------------------


class HideFields(BaseModel):
    dao: bool = False
    cycle: bool = False


class CanonicalResponse(BaseModel):
    mode: Literal["ingredient", "wellness"]
    header: str
    base: str
    article_url: Optional[str] = None
    verdict_normalized: Optional[Literal["Safe", "Caution", "Avoid"]] = None
    hide_fields: HideFields = Field(default_factory=HideFields)
    show_chip: bool = False
    engagement: str
    followups: List[str]

    @model_validator(mode="after")
    def _check_contract(self) -> "CanonicalResponse":
        expected_chip = self.mode == "ingredient" and self.verdict_normalized is not None
        if self.show_chip != expected_chip:
            raise ValueError("show_chip must be set exactly for ingredient answers with a verdict")
        if not 1 <= len(self.followups) <= 3:
            raise ValueError("followups must hold 1 to 3 questions")
        return self


# --------------------
# Endpoint results
# --------------------


class DbResult(BaseModel):
    kind: Literal["db"] = "db"
    record: StructuredRecord
    answer: str
    ui: CanonicalResponse
    pagination: Pagination


class GptResult(BaseModel):
    kind: Literal["gpt"] = "gpt"
    answer: GenerativeResult
    ui: CanonicalResponse
    degraded: bool = False


ClarityOut = Annotated[Union[DbResult, GptResult], Field(discriminator="kind")]


class CheckDao(BaseModel):
    signal: Optional[str] = None
    mechanism: Optional[str] = None


class CheckCycle(BaseModel):
    flag: Optional[str] = None
    notes: Optional[str] = None


class CheckRecord(BaseModel):
    name: Optional[str] = None
    verdict: Optional[str] = None
    why_brief: Optional[str] = None
    dao: CheckDao
    cycle: CheckCycle
    citations: List[str] = Field(default_factory=list)


class CheckOut(BaseModel):
    ok: bool = True
    query: str
    result: Optional[CheckRecord] = None
