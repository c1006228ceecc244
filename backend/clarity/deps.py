from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from supabase import Client

from clarity.ai.provider_factory import get_chat_provider
from clarity.ai.providers.base import ChatProvider
from clarity.config.settings import ClaritySettings, get_settings
from clarity.store.ingredients import IngredientStore, InteractionLog
from clarity.store.supabase_client import build_supabase_client


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    return build_supabase_client(get_settings())


@lru_cache(maxsize=1)
def get_ingredient_store() -> IngredientStore:
    settings = get_settings()
    return IngredientStore(
        get_supabase(),
        table=settings.ingredients_table,
        page_size=settings.page_size,
        ranking=settings.ranking,
    )


@lru_cache(maxsize=1)
def get_interaction_log() -> InteractionLog | None:
    settings = get_settings()
    if not settings.log_interactions:
        return None
    return InteractionLog(get_supabase(), table=settings.interactions_table)


@dataclass(frozen=True)
class Collaborators:
    """
    Process-wide clients, built on first use.

    Routes validate the request before touching these, so a bad request is
    reported as such even when configuration is missing.
    """

    settings: Callable[[], ClaritySettings]
    store: Callable[[], IngredientStore]
    provider: Callable[[], ChatProvider]
    interaction_log: Callable[[], InteractionLog | None]


def get_collaborators() -> Collaborators:
    return Collaborators(
        settings=get_settings,
        store=get_ingredient_store,
        provider=get_chat_provider,
        interaction_log=get_interaction_log,
    )
