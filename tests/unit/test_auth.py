"""Unit tests for nbstudio.api.auth helpers."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from nbstudio.api.auth import SessionUser, build_oauth, is_sign_in_allowed, require_session
from nbstudio.core.config import StudioConfig

ALLOWED = frozenset({"kid@example.com"})


class TestIsSignInAllowed:
    """Tests for is_sign_in_allowed."""

    def test_allowed_email(self):
        assert is_sign_in_allowed("kid@example.com", True, ALLOWED)

    def test_case_and_whitespace_insensitive(self):
        assert is_sign_in_allowed("  Kid@Example.COM ", True, ALLOWED)

    def test_not_on_list(self):
        assert not is_sign_in_allowed("stranger@example.com", True, ALLOWED)

    def test_unverified_rejected(self):
        assert not is_sign_in_allowed("kid@example.com", False, ALLOWED)

    def test_missing_verification_flag_accepted(self):
        assert is_sign_in_allowed("kid@example.com", None, ALLOWED)

    def test_missing_email_rejected(self):
        assert not is_sign_in_allowed(None, True, frozenset())

    def test_empty_allow_list_allows_everyone(self):
        assert is_sign_in_allowed("anyone@example.com", True, frozenset())


class TestRequireSession:
    """Tests for the require_session dependency."""

    def test_signed_in(self):
        request = SimpleNamespace(session={"user": {"email": "kid@example.com", "name": "Kid"}})
        assert require_session(request) == SessionUser(email="kid@example.com", name="Kid")

    @pytest.mark.parametrize("session", [{}, {"user": {}}, {"user": {"name": "No email"}}])
    def test_no_session_is_401(self, session):
        with pytest.raises(HTTPException) as exc_info:
            require_session(SimpleNamespace(session=session))
        assert exc_info.value.status_code == 401


class TestBuildOAuth:
    """Tests for build_oauth."""

    def test_without_credentials(self, test_config):
        assert build_oauth(test_config).create_client("google") is None

    def test_with_credentials(self):
        cfg = StudioConfig(google_client_id="client-id", google_client_secret="secret")
        assert build_oauth(cfg).create_client("google") is not None
