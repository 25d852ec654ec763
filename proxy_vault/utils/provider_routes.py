"""
Upstream provider routing table.

Maps a provider name to its base URL and the way it expects the real
credential to be presented. Pure data and pure functions; no I/O.
"""

from typing import Dict, NamedTuple, Optional

from ..enums import AuthStyle

DEFAULT_PROVIDER = "default"

# Providers whose base URL is supplied per request
DYNAMIC_BASE_URL = "DYNAMIC"
SUPABASE_URL_HEADER = "x-supabase-url"


class ProviderRoute(NamedTuple):
    base_url: str
    auth_style: AuthStyle
    header_name: Optional[str] = None


PROVIDER_ROUTES: Dict[str, ProviderRoute] = {
    "openai": ProviderRoute("https://api.openai.com", AuthStyle.BEARER),
    "anthropic": ProviderRoute("https://api.anthropic.com/v1", AuthStyle.HEADER, "x-api-key"),
    "google": ProviderRoute(
        "https://generativelanguage.googleapis.com/v1beta", AuthStyle.QUERY_PARAM, "key"
    ),
    "groq": ProviderRoute("https://api.groq.com/openai", AuthStyle.BEARER),
    "mistral": ProviderRoute("https://api.mistral.ai", AuthStyle.BEARER),
    "deepseek": ProviderRoute("https://api.deepseek.com", AuthStyle.BEARER),
    "qwen": ProviderRoute("https://dashscope-intl.aliyuncs.com/compatible-mode", AuthStyle.BEARER),
    "openrouter": ProviderRoute("https://openrouter.ai/api", AuthStyle.BEARER),
    "brave": ProviderRoute(
        "https://api.search.brave.com/res/v1", AuthStyle.HEADER, "X-Subscription-Token"
    ),
    "tavily": ProviderRoute("https://api.tavily.com", AuthStyle.BEARER),
    "exa": ProviderRoute("https://api.exa.ai", AuthStyle.BEARER),
    "serper": ProviderRoute("https://google.serper.dev", AuthStyle.HEADER, "X-API-KEY"),
    "supabase": ProviderRoute(DYNAMIC_BASE_URL, AuthStyle.HEADER_AND_BEARER, "apikey"),
    DEFAULT_PROVIDER: ProviderRoute("https://api.openai.com/v1", AuthStyle.BEARER),
}


def is_known_provider(provider: str) -> bool:
    return (provider or "").strip().lower() in PROVIDER_ROUTES


def get_provider_route(provider: str) -> ProviderRoute:
    """Return the route for provider, falling back to the default route."""
    key = (provider or "").strip().lower()
    return PROVIDER_ROUTES.get(key, PROVIDER_ROUTES[DEFAULT_PROVIDER])


def build_target_url(base_url: str, path: str) -> str:
    """Join a base URL and an upstream path with exactly one slash."""
    return f"{base_url.rstrip('/')}/{(path or '').lstrip('/')}"
