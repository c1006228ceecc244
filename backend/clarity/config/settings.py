from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class ConfigError(RuntimeError):
    missing: tuple[str, ...]

    def __str__(self) -> str:
        return f"Missing configuration: {', '.join(self.missing)} not set"


@dataclass(frozen=True)
class ClaritySettings:
    supabase_url: str = ""
    supabase_key: str = ""
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.4
    openai_timeout_s: float = 30.0
    openai_max_tokens: int = 700
    ai_provider: str = "openai"  # openai | stub
    ingredients_table: str = "ingredients_variants"
    interactions_table: str = "clarity_interactions"
    page_size: int = 5
    history_turns: int = 3
    history_chars: int = 400
    article_prefix: str = "/ingredients/"
    ranking: str = "first"  # first | exact
    log_interactions: bool = True

    def missing(self) -> list[str]:
        names = []
        if not self.supabase_url:
            names.append("SUPABASE_URL")
        if not self.supabase_key:
            names.append("SUPABASE_ANON_KEY")
        if self.ai_provider == "openai" and not self.openai_api_key:
            names.append("OPENAI_API_KEY")
        return names

    def require(self) -> None:
        names = self.missing()
        if names:
            raise ConfigError(tuple(names))


def _env_str(key: str, default: str = "") -> str:
    return (os.getenv(key) or "").strip() or default


def _env_bool(key: str, default: bool) -> bool:
    if key not in os.environ:
        return default
    val = (os.getenv(key) or "").strip().lower()
    if val in {"1", "true", "yes", "on"}:
        return True
    if val in {"0", "false", "no", "off"}:
        return False
    return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key) or "")
    except Exception:
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key) or "")
    except Exception:
        return default


@lru_cache(maxsize=1)
def get_settings() -> ClaritySettings:
    ranking = _env_str("CLARITY_RANKING", "first").lower()
    if ranking not in {"first", "exact"}:
        ranking = "first"
    provider = _env_str("CLARITY_AI_PROVIDER", "openai").lower()

    return ClaritySettings(
        supabase_url=_env_str("SUPABASE_URL").rstrip("/"),
        # Older deployments only set the service role key.
        supabase_key=_env_str("SUPABASE_ANON_KEY") or _env_str("SUPABASE_SERVICE_ROLE_KEY"),
        openai_api_key=_env_str("OPENAI_API_KEY"),
        openai_base_url=_env_str("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
        openai_model=_env_str("OPENAI_MODEL", "gpt-4o-mini"),
        openai_temperature=_env_float("OPENAI_TEMPERATURE", 0.4),
        openai_timeout_s=_env_float("OPENAI_TIMEOUT_S", 30.0),
        openai_max_tokens=_env_int("OPENAI_MAX_TOKENS", 700),
        ai_provider=provider,
        ingredients_table=_env_str("CLARITY_INGREDIENTS_TABLE", "ingredients_variants"),
        interactions_table=_env_str("CLARITY_INTERACTIONS_TABLE", "clarity_interactions"),
        page_size=max(1, _env_int("CLARITY_PAGE_SIZE", 5)),
        history_turns=min(3, max(0, _env_int("CLARITY_HISTORY_TURNS", 3))),
        history_chars=max(1, _env_int("CLARITY_HISTORY_CHARS", 400)),
        article_prefix=_env_str("CLARITY_ARTICLE_PREFIX", "/ingredients/"),
        ranking=ranking,
        log_interactions=_env_bool("CLARITY_LOG_INTERACTIONS", True),
    )
