"""
Identity provider operations, backed by the WorkOS SDK.

The provider owns the session format: on login the SDK seals the tokens it gets
back with the cookie password, and on every request it unseals them locally and
verifies the access token. This module never inspects the sealed value and
never sends the cookie password over the wire.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from workos import WorkOSClient

from linkgate.auth.config import AuthConfig
from linkgate.auth.models import CodeAuthentication, Identity, SessionResult
from linkgate.errors import UpstreamFailure

logger = logging.getLogger(__name__)


def _require(cfg: AuthConfig) -> None:
    if not cfg.api_key:
        raise ValueError("WORKOS_API_KEY not configured")
    if not cfg.client_id:
        raise ValueError("WORKOS_CLIENT_ID not configured")
    if not cfg.cookie_password:
        raise ValueError("WORKOS_COOKIE_PASSWORD not configured")


@lru_cache(maxsize=4)
def _client(cfg: AuthConfig) -> WorkOSClient:
    # One SDK client (and HTTP connection pool) per configuration.
    return WorkOSClient(
        api_key=cfg.api_key,
        client_id=cfg.client_id,
        base_url=f"{cfg.api_base_url}/",
        request_timeout=max(1, int(round(cfg.http_timeout_seconds))),
    )


def get_authorization_url(cfg: AuthConfig, *, redirect_uri: str, state: Optional[str] = None) -> str:
    """Build the provider-hosted sign-in URL for the configured client."""
    if not cfg.client_id:
        raise ValueError("WORKOS_CLIENT_ID not configured")
    params: Dict[str, Any] = {"provider": "authkit", "redirect_uri": redirect_uri}
    if state:
        params["state"] = state
    return _client(cfg).user_management.get_authorization_url(**params)


def authenticate_with_code(cfg: AuthConfig, *, code: str) -> CodeAuthentication:
    """
    Exchange a login code for a sealed session.

    Raises UpstreamFailure when the provider rejects the code or no sealed
    session comes back.
    """
    _require(cfg)
    try:
        auth = _client(cfg).user_management.authenticate_with_code(
            code=code,
            session={"seal_session": True, "cookie_password": cfg.cookie_password},
        )
    except Exception as e:
        logger.warning("Identity provider code exchange failed: %s", str(e))
        raise UpstreamFailure(f"Identity provider code exchange failed: {type(e).__name__}") from e

    sealed = str(getattr(auth, "sealed_session", None) or "")
    user = getattr(auth, "user", None)
    if not sealed or user is None:
        raise UpstreamFailure("Identity provider response missing sealed session")
    try:
        identity = Identity.from_provider(user)
    except ValueError as e:
        raise UpstreamFailure("Identity provider response missing user id") from e
    return CodeAuthentication(sealed_session=sealed, identity=identity)


def authenticate_with_session_cookie(cfg: AuthConfig, *, session_data: str) -> SessionResult:
    """
    Unseal and verify a session cookie.

    Returns a SessionResult with `clear_cookie=True` when the session is not
    authenticated (expired, revoked, tampered). SDK and transport errors
    propagate; the caller decides how to fail.
    """
    _require(cfg)
    result = _client(cfg).user_management.authenticate_with_session_cookie(
        session_data=session_data,
        cookie_password=cfg.cookie_password,
    )
    if getattr(result, "authenticated", False) is not True:
        logger.info("Session rejected by identity provider: reason=%s", getattr(result, "reason", None) or "unknown")
        return SessionResult(clear_cookie=True)

    user = getattr(result, "user", None)
    session_id = str(getattr(result, "session_id", None) or "")
    if user is None or not session_id:
        raise UpstreamFailure("Identity provider response missing user or session id")
    return SessionResult(identity=Identity.from_provider(user), session_id=session_id)


def get_logout_url(cfg: AuthConfig, *, session_id: str, return_to: Optional[str] = None) -> str:
    """Provider URL that ends `session_id` on the provider side."""
    if not session_id:
        raise ValueError("session_id is required")
    params: Dict[str, Any] = {"session_id": session_id}
    if return_to:
        params["return_to"] = return_to
    return _client(cfg).user_management.get_logout_url(**params)
