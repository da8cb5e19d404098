from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

SESSION_TTL_DEFAULT = 60 * 60 * 24 * 7  # 7 days


@dataclass(frozen=True)
class AuthConfig:
    # Identity provider (hosted user management)
    api_key: Optional[str]
    client_id: Optional[str]
    cookie_password: Optional[str]  # Symmetric key the provider uses to seal sessions
    redirect_uri: Optional[str]  # Default: <request origin>/auth/callback
    api_base_url: str

    # Session cookie
    session_ttl_seconds: int

    # Outbound HTTP
    http_timeout_seconds: float

    @property
    def provider_configured(self) -> bool:
        return bool(self.api_key and self.client_id and self.cookie_password)


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load identity provider configuration from environment variables.

    WORKOS_API_KEY, WORKOS_CLIENT_ID and WORKOS_COOKIE_PASSWORD are required for
    login to work; missing values surface as errors when the provider is called.
    """
    ttl = int(_env_float("AUTH_SESSION_TTL_SECONDS", SESSION_TTL_DEFAULT))
    if ttl <= 60:
        ttl = 60

    timeout = _env_float("HTTP_TIMEOUT_SECONDS", 10.0)
    if timeout <= 0:
        timeout = 10.0

    return AuthConfig(
        api_key=(os.getenv("WORKOS_API_KEY", "") or "").strip() or None,
        client_id=(os.getenv("WORKOS_CLIENT_ID", "") or "").strip() or None,
        cookie_password=(os.getenv("WORKOS_COOKIE_PASSWORD", "") or "").strip() or None,
        redirect_uri=(os.getenv("WORKOS_REDIRECT_URI", "") or "").strip() or None,
        api_base_url=((os.getenv("WORKOS_API_BASE_URL", "") or "").strip() or "https://api.workos.com").rstrip("/"),
        session_ttl_seconds=ttl,
        http_timeout_seconds=timeout,
    )
