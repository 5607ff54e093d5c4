"""
auth/oauth.py -- Authlib OAuth provider registry (GitHub, Google).

Only providers with both client ID and secret configured get registered.
The callback URL for each provider is built from BASE_URL:

    {BASE_URL}/api/auth/<provider>/redirect

The login endpoints start the authorization-code redirect through authlib.
The callback endpoints are placeholders: exchanging the code and linking the
provider identity to a local user is not implemented.

OAuth state parameter (CSRF protection) is handled by authlib via Starlette
SessionMiddleware, which api/main.py installs.

Layer rule: no imports from api/, users/, or cache/.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from core.config import Settings

logger = logging.getLogger("sessionauth.auth.oauth")

_PROVIDERS = {
    "github": {
        "label": "GitHub",
        "access_token_url": "https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
        "authorize_url": "https://github.com/login/oauth/authorize",
        "api_base_url": "https://api.github.com/",
        "client_kwargs": {"scope": "read:user user:email"},
    },
    "google": {
        "label": "Google",
        "server_metadata_url": "https://accounts.google.com/.well-known/openid-configuration",
        "client_kwargs": {"scope": "openid email profile"},
    },
}


def _credentials(settings: Settings, provider: str) -> tuple[str, str]:
    if provider == "github":
        return settings.github_oauth_client_id, settings.github_oauth_client_secret
    if provider == "google":
        return settings.google_oauth_client_id, settings.google_oauth_client_secret
    raise ValueError(f"Unknown OAuth provider: {provider!r}")


def build_oauth(settings: Settings) -> OAuth:
    """Return an authlib registry with every configured provider registered."""
    oauth = OAuth()
    for name, meta in _PROVIDERS.items():
        client_id, client_secret = _credentials(settings, name)
        if not (client_id and client_secret):
            continue
        options = {k: v for k, v in meta.items() if k != "label"}
        oauth.register(name=name, client_id=client_id, client_secret=client_secret, **options)
        logger.info("%s OAuth provider registered", meta["label"])
    return oauth


def callback_url(settings: Settings, provider: str) -> str:
    return f"{settings.base_url.rstrip('/')}/api/auth/{provider}/redirect"


def get_enabled_providers(settings: Settings) -> list[dict]:
    """Return {"name", "label"} for every provider with credentials configured."""
    providers: list[dict] = []
    for name, meta in _PROVIDERS.items():
        client_id, client_secret = _credentials(settings, name)
        if client_id and client_secret:
            providers.append({"name": name, "label": meta["label"]})
    return providers
