from __future__ import annotations

import base64
import os
from urllib.parse import urlsplit

LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def random_token(nbytes: int = 32) -> str:
    return b64url(os.urandom(nbytes))


def is_loopback_host(hostname: str | None) -> bool:
    host = (hostname or "").strip().lower().strip("[]")
    return host in LOOPBACK_HOSTS


def use_secure_cookies(url: str) -> bool:
    """
    Secure cookies everywhere except local development hosts.

    Browsers drop `Secure` cookies received over plain HTTP, which would break
    login on http://localhost.
    """
    return not is_loopback_host(urlsplit(url).hostname)


def request_origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"
