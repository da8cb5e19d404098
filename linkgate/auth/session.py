from __future__ import annotations

import logging
from typing import Optional

from linkgate.auth import provider
from linkgate.auth.config import AuthConfig
from linkgate.auth.models import SessionResult

logger = logging.getLogger(__name__)

SESSION_COOKIE = "wos_session"


def validate_session(cfg: AuthConfig, sealed: Optional[str]) -> SessionResult:
    """
    Resolve the session cookie of one request into an identity.

    Fails closed: any provider or transport error is logged and treated as an
    anonymous request whose cookie must be cleared.
    """
    if not sealed:
        return SessionResult()
    try:
        return provider.authenticate_with_session_cookie(cfg, session_data=sealed)
    except Exception as e:
        logger.warning("Session validation error: %s", str(e), exc_info=True)
        return SessionResult(clear_cookie=True)


def session_cookie_kwargs(cfg: AuthConfig, value: str, *, secure: bool) -> dict:
    return {
        "key": SESSION_COOKIE,
        "value": value,
        "max_age": cfg.session_ttl_seconds,
        "httponly": True,
        "secure": secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs(*, secure: bool) -> dict:
    return {
        "key": SESSION_COOKIE,
        "value": "",
        "max_age": 0,
        "httponly": True,
        "secure": secure,
        "samesite": "lax",
        "path": "/",
    }
