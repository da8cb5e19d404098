"""
Third-party key provisioning over PKCE.

The browser only ever sees the authorization page; the code-for-key exchange and
credit lookups are server-to-server calls.
"""

from __future__ import annotations

import logging
from typing import Any, Dict
from urllib.parse import urlencode

import requests

from linkgate.errors import UpstreamFailure
from linkgate.linking.config import LinkingConfig

logger = logging.getLogger(__name__)


def build_authorize_url(cfg: LinkingConfig, *, callback_url: str, code_challenge: str) -> str:
    params = {
        "callback_url": callback_url,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return f"{cfg.auth_url}?{urlencode(params)}"


def exchange_code_for_key(cfg: LinkingConfig, *, code: str, code_verifier: str) -> str:
    """
    Exchange an authorization code plus its PKCE verifier for an API key.

    Raises UpstreamFailure on transport errors, non-2xx responses or a response
    without a key. The upstream body is logged, never returned.
    """
    try:
        r = requests.post(
            cfg.keys_url,
            json={"code": code, "code_verifier": code_verifier, "code_challenge_method": "S256"},
            timeout=cfg.http_timeout_seconds,
        )
    except requests.RequestException as e:
        raise UpstreamFailure(f"Key exchange unreachable: {e}", public_message="Failed to exchange code for token") from e
    if not r.ok:
        logger.error("Key exchange failed: status=%d body=%s", r.status_code, r.text[:500])
        raise UpstreamFailure(
            f"Key exchange failed (status={r.status_code})", public_message="Failed to exchange code for token"
        )
    try:
        data = r.json()
    except ValueError as e:
        raise UpstreamFailure("Invalid key exchange response", public_message="Failed to exchange code for token") from e
    key = data.get("key") if isinstance(data, dict) else None
    if not key:
        raise UpstreamFailure("Key exchange response missing key", public_message="Failed to exchange code for token")
    return str(key)


def fetch_credits(cfg: LinkingConfig, *, api_key: str) -> Dict[str, Any]:
    try:
        r = requests.get(
            cfg.credits_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=cfg.http_timeout_seconds,
        )
    except requests.RequestException as e:
        raise UpstreamFailure(f"Credits lookup unreachable: {e}") from e
    if not r.ok:
        logger.warning("Credits lookup failed: status=%d body=%s", r.status_code, r.text[:500])
        raise UpstreamFailure(f"Credits lookup failed (status={r.status_code})")
    try:
        data = r.json()
    except ValueError as e:
        raise UpstreamFailure("Invalid credits response") from e
    inner = data.get("data") if isinstance(data, dict) else None
    if not isinstance(inner, dict):
        raise UpstreamFailure("Invalid credits response")
    return inner


def balance_cents(credits: Dict[str, Any]) -> int:
    """Remaining balance (total credits minus usage) in integer cents, floored at 0."""
    try:
        total = float(credits.get("total_credits") or 0)
        used = float(credits.get("total_usage") or 0)
    except (TypeError, ValueError) as e:
        raise UpstreamFailure("Invalid credits response") from e
    return max(0, int(round((total - used) * 100)))
