from __future__ import annotations

import logging
from unittest.mock import patch

import pytest
import requests

from linkgate.auth.models import Identity, SessionResult
from linkgate.auth.session import SESSION_COOKIE, clear_session_cookie_kwargs, session_cookie_kwargs, validate_session
from linkgate.errors import UpstreamFailure


def test_no_cookie_means_anonymous_without_provider_call(auth_cfg) -> None:
    with patch("linkgate.auth.provider.authenticate_with_session_cookie") as mock_auth:
        for value in (None, ""):
            result = validate_session(auth_cfg, value)
            assert result.identity is None
            assert result.session_id is None
            assert result.clear_cookie is False
        mock_auth.assert_not_called()


def test_authenticated_session_yields_identity(auth_cfg, identity) -> None:
    with patch("linkgate.auth.provider.authenticate_with_session_cookie") as mock_auth:
        mock_auth.return_value = SessionResult(identity=identity, session_id="session_01")
        result = validate_session(auth_cfg, "sealed")
    assert result.authenticated is True
    assert result.identity == identity
    assert result.session_id == "session_01"
    assert result.clear_cookie is False
    mock_auth.assert_called_once_with(auth_cfg, session_data="sealed")


def test_rejected_session_is_cleared_every_time(auth_cfg) -> None:
    with patch("linkgate.auth.provider.authenticate_with_session_cookie") as mock_auth:
        mock_auth.return_value = SessionResult(clear_cookie=True)
        first = validate_session(auth_cfg, "expired")
        second = validate_session(auth_cfg, "expired")
    assert first == second
    assert first.identity is None
    assert first.clear_cookie is True


@pytest.mark.parametrize(
    "error",
    [
        UpstreamFailure("Identity provider request failed (status=503)"),
        requests.Timeout("read timed out"),
        ValueError("WORKOS_API_KEY not configured"),
    ],
)
def test_provider_errors_fail_closed(auth_cfg, caplog, error) -> None:
    with patch("linkgate.auth.provider.authenticate_with_session_cookie", side_effect=error):
        with caplog.at_level(logging.WARNING, logger="linkgate.auth.session"):
            result = validate_session(auth_cfg, "sealed")
    assert result.identity is None
    assert result.session_id is None
    assert result.clear_cookie is True
    assert "Session validation error" in caplog.text


def test_session_cookie_kwargs(auth_cfg) -> None:
    kw = session_cookie_kwargs(auth_cfg, "sealed", secure=True)
    assert kw["key"] == SESSION_COOKIE
    assert kw["max_age"] == 604800
    assert kw["httponly"] is True
    assert kw["samesite"] == "lax"
    assert kw["path"] == "/"
    assert kw["secure"] is True

    cleared = clear_session_cookie_kwargs(secure=False)
    assert cleared["value"] == ""
    assert cleared["max_age"] == 0
    assert cleared["secure"] is False


def test_identity_from_provider_payload() -> None:
    ident = Identity.from_provider({"id": "user_9", "email": "x@example.com", "first_name": None, "last_name": ""})
    assert ident.id == "user_9"
    assert ident.first_name is None
    assert ident.last_name is None
    assert ident.display_name == "x@example.com"
