from __future__ import annotations

from supabase import Client, create_client

from clarity.config.settings import ClaritySettings, ConfigError


def build_supabase_client(settings: ClaritySettings) -> Client:
    missing = [
        name
        for name, value in (("SUPABASE_URL", settings.supabase_url), ("SUPABASE_ANON_KEY", settings.supabase_key))
        if not value
    ]
    if missing:
        raise ConfigError(tuple(missing))
    return create_client(settings.supabase_url, settings.supabase_key)
