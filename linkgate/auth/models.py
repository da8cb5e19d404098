from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class Identity:
    """Authenticated user as reported by the identity provider."""

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.first_name or self.email

    @classmethod
    def from_provider(cls, user: Any) -> "Identity":
        """Build from the provider's user record, either an SDK model or a plain mapping."""

        def field(name: str) -> Any:
            if isinstance(user, Mapping):
                return user.get(name)
            return getattr(user, name, None)

        user_id = field("id")
        if not user_id:
            raise ValueError("user record has no id")
        return cls(
            id=str(user_id),
            email=str(field("email") or ""),
            first_name=field("first_name") or None,
            last_name=field("last_name") or None,
        )


@dataclass(frozen=True)
class SessionResult:
    """Outcome of validating the session cookie for one request."""

    identity: Optional[Identity] = None
    session_id: Optional[str] = None
    # True when a cookie was presented but rejected; the response must clear it.
    clear_cookie: bool = False

    @property
    def authenticated(self) -> bool:
        return self.identity is not None


@dataclass(frozen=True)
class CodeAuthentication:
    """Result of exchanging a login code: the sealed session plus the user it belongs to."""

    sealed_session: str
    identity: Identity
