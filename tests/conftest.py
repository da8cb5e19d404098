"""
Pytest config.

Puts the repo root on sys.path so `import linkgate` works without an editable
install, and provides in-process fakes for the identity provider and the
third-party key exchange so no test touches the network.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlencode

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from fastapi.testclient import TestClient  # noqa: E402

from linkgate.api.server import AppContext, create_app  # noqa: E402
from linkgate.auth.config import AuthConfig  # noqa: E402
from linkgate.auth.models import CodeAuthentication, Identity, SessionResult  # noqa: E402
from linkgate.auth.session import SESSION_COOKIE  # noqa: E402
from linkgate.errors import UpstreamFailure  # noqa: E402
from linkgate.linking.config import LinkingConfig  # noqa: E402
from linkgate.storage.memory_store import MemoryCredentialStore  # noqa: E402

VALID_SEALED = "sealed-valid"
COOKIE_PASSWORD = "test-cookie-password-at-least-32-chars!!"


class FakeIdentityProvider:
    """Stands in for the identity provider functions in `linkgate.auth.provider`."""

    def __init__(self, identity: Identity) -> None:
        self.identity = identity
        self.sessions: Dict[str, Tuple[str, Identity]] = {VALID_SEALED: ("session_01", identity)}
        self.codes: Dict[str, str] = {"abc": "sealed-from-abc"}
        self.session_checks: List[str] = []
        self.session_error: Optional[Exception] = None
        self.logout_error: Optional[Exception] = None

    def authenticate_with_session_cookie(self, cfg, *, session_data):  # type: ignore[no-untyped-def]
        self.session_checks.append(session_data)
        if self.session_error is not None:
            raise self.session_error
        hit = self.sessions.get(session_data)
        if hit is None:
            return SessionResult(clear_cookie=True)
        return SessionResult(identity=hit[1], session_id=hit[0])

    def authenticate_with_code(self, cfg, *, code):  # type: ignore[no-untyped-def]
        sealed = self.codes.get(code)
        if sealed is None:
            raise UpstreamFailure("Identity provider request failed (status=400)")
        return CodeAuthentication(sealed_session=sealed, identity=self.identity)

    def get_authorization_url(self, cfg, *, redirect_uri, state=None):  # type: ignore[no-untyped-def]
        query = urlencode({"client_id": cfg.client_id, "redirect_uri": redirect_uri, "provider": "authkit"})
        return f"https://idp.example/user_management/authorize?{query}"

    def get_logout_url(self, cfg, *, session_id, return_to=None):  # type: ignore[no-untyped-def]
        if self.logout_error is not None:
            raise self.logout_error
        return f"https://idp.example/user_management/sessions/logout?session_id={session_id}"


class FakeKeyExchange:
    """Stands in for `linkgate.linking.openrouter.exchange_code_for_key`."""

    def __init__(self) -> None:
        self.keys: Dict[str, str] = {"xyz": "sk-or-v1-first", "xyz2": "sk-or-v1-second"}
        self.calls: List[Tuple[str, str]] = []

    def exchange_code_for_key(self, cfg, *, code, code_verifier):  # type: ignore[no-untyped-def]
        self.calls.append((code, code_verifier))
        key = self.keys.get(code)
        if key is None:
            raise UpstreamFailure(
                "Key exchange failed (status=403)", public_message="Failed to exchange code for token"
            )
        return key


@pytest.fixture
def identity() -> Identity:
    return Identity(id="user_01", email="ada@example.com", first_name="Ada", last_name="Lovelace")


@pytest.fixture
def auth_cfg() -> AuthConfig:
    return AuthConfig(
        api_key="sk_test_123",
        client_id="client_123",
        cookie_password=COOKIE_PASSWORD,
        redirect_uri=None,
        api_base_url="https://idp.example",
        session_ttl_seconds=60 * 60 * 24 * 7,
        http_timeout_seconds=5.0,
    )


@pytest.fixture
def linking_cfg() -> LinkingConfig:
    return LinkingConfig(
        auth_url="https://openrouter.example/auth",
        api_base_url="https://openrouter.example/api/v1",
        callback_url=None,
        verifier_ttl_seconds=600,
        http_timeout_seconds=5.0,
    )


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def fake_idp(monkeypatch: pytest.MonkeyPatch, identity: Identity) -> FakeIdentityProvider:
    fake = FakeIdentityProvider(identity)
    monkeypatch.setattr("linkgate.auth.provider.authenticate_with_session_cookie", fake.authenticate_with_session_cookie)
    monkeypatch.setattr("linkgate.auth.provider.authenticate_with_code", fake.authenticate_with_code)
    monkeypatch.setattr("linkgate.auth.provider.get_logout_url", fake.get_logout_url)
    monkeypatch.setattr("linkgate.auth.provider.get_authorization_url", fake.get_authorization_url)
    return fake


@pytest.fixture
def fake_exchange(monkeypatch: pytest.MonkeyPatch) -> FakeKeyExchange:
    fake = FakeKeyExchange()
    monkeypatch.setattr("linkgate.linking.openrouter.exchange_code_for_key", fake.exchange_code_for_key)
    return fake


@pytest.fixture
def app(auth_cfg: AuthConfig, linking_cfg: LinkingConfig, store: MemoryCredentialStore, fake_idp, fake_exchange):  # type: ignore[no-untyped-def]
    return create_app(AppContext(auth=auth_cfg, linking=linking_cfg, store=store))


@pytest.fixture
def client(app) -> TestClient:  # type: ignore[no-untyped-def]
    # Loopback host: cookies are issued without `Secure`, so the client sends them back over http.
    return TestClient(app, base_url="http://localhost")


@pytest.fixture
def signed_in(client: TestClient) -> TestClient:
    client.cookies.set(SESSION_COOKIE, VALID_SEALED)
    return client
