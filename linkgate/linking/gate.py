from __future__ import annotations

from typing import Optional

from linkgate.auth.models import Identity
from linkgate.storage.base import CredentialStore

ONBOARDING_PATH = "/onboarding"

# Paths needed to finish linking (or to leave) must never bounce back to onboarding.
EXEMPT_PREFIXES = (ONBOARDING_PATH, "/linking", "/auth")
EXEMPT_PATHS = ("/healthz",)


def is_exempt(path: str) -> bool:
    if path in EXEMPT_PATHS:
        return True
    for prefix in EXEMPT_PREFIXES:
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def onboarding_redirect(store: CredentialStore, identity: Optional[Identity], path: str) -> Optional[str]:
    """
    Return the redirect target when an authenticated identity without a linked
    credential requests a gated path; None means pass through.

    Anonymous requests always pass; routes decide whether they need a login.
    """
    if identity is None:
        return None
    if is_exempt(path):
        return None
    if store.for_identity(identity.id).exists():
        return None
    return ONBOARDING_PATH
