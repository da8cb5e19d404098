from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from linkgate.auth.util import b64url, random_token

VERIFIER_COOKIE = "openrouter_pkce_verifier"
VERIFIER_SALT = "linkgate-pkce-verifier-v1"
VERIFIER_BYTES = 32


@dataclass(frozen=True)
class PkcePair:
    verifier: str
    challenge: str
    method: str = "S256"


def code_challenge(verifier: str) -> str:
    """S256 challenge: base64url(SHA-256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return b64url(digest)


def generate_pair(nbytes: int = VERIFIER_BYTES) -> PkcePair:
    if nbytes < VERIFIER_BYTES:
        raise ValueError(f"PKCE verifier needs at least {VERIFIER_BYTES} random bytes")
    verifier = random_token(nbytes)
    return PkcePair(verifier=verifier, challenge=code_challenge(verifier))


def _serializer(secret: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key=secret, salt=VERIFIER_SALT)


def seal_verifier(secret: str, *, verifier: str, owner_id: str) -> str:
    """
    Signed cookie value binding a verifier to the identity that started the flow.

    The value is signed, not encrypted; it only ever travels between this server
    and the browser that started the flow.
    """
    raw = json.dumps({"v": verifier, "sub": owner_id}, separators=(",", ":"), sort_keys=True)
    return _serializer(secret).dumps(raw)


def open_verifier(secret: str, value: Optional[str], *, owner_id: str, max_age: int) -> Optional[str]:
    """Return the verifier if the cookie is intact, fresh and minted for `owner_id`."""
    if not value:
        return None
    try:
        raw = _serializer(secret).loads(value, max_age=max_age)
        data = json.loads(raw)
    except (BadSignature, BadTimeSignature, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    if str(data.get("sub") or "") != owner_id:
        return None
    verifier = str(data.get("v") or "")
    return verifier or None


def verifier_cookie_kwargs(value: str, *, max_age: int, secure: bool) -> dict:
    return {
        "key": VERIFIER_COOKIE,
        "value": value,
        "max_age": max_age,
        "httponly": True,
        "secure": secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_verifier_cookie_kwargs(*, secure: bool) -> dict:
    return verifier_cookie_kwargs("", max_age=0, secure=secure)
