from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class LinkingConfig:
    auth_url: str  # Browser-facing authorization page
    api_base_url: str  # Server-to-server API (key exchange, credits)
    callback_url: Optional[str]  # Default: <request origin>/linking/callback
    verifier_ttl_seconds: int
    http_timeout_seconds: float

    @property
    def keys_url(self) -> str:
        return f"{self.api_base_url}/auth/keys"

    @property
    def credits_url(self) -> str:
        return f"{self.api_base_url}/credits"


@lru_cache(maxsize=1)
def load_linking_config() -> LinkingConfig:
    ttl_raw = (os.getenv("PKCE_COOKIE_TTL_SECONDS", "") or "").strip() or "600"
    try:
        ttl = int(ttl_raw)
    except ValueError:
        ttl = 600
    # A verifier is only useful for one round trip through the consent screen.
    ttl = min(max(ttl, 60), 600)

    timeout_raw = (os.getenv("HTTP_TIMEOUT_SECONDS", "") or "").strip() or "10"
    try:
        timeout = float(timeout_raw)
    except ValueError:
        timeout = 10.0

    return LinkingConfig(
        auth_url=(os.getenv("OPENROUTER_AUTH_URL", "") or "").strip() or "https://openrouter.ai/auth",
        api_base_url=((os.getenv("OPENROUTER_API_BASE_URL", "") or "").strip() or "https://openrouter.ai/api/v1").rstrip(
            "/"
        ),
        callback_url=(os.getenv("OPENROUTER_CALLBACK_URL", "") or "").strip() or None,
        verifier_ttl_seconds=ttl,
        http_timeout_seconds=timeout if timeout > 0 else 10.0,
    )
