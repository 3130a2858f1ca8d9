"""
Single-active-session tests.

Verifies:
- A new login supersedes every earlier token for the profile
- Missing cookie / missing user are treated as valid
- Store failures fail open (logged) by default and fail closed on request
- Login sets the session cookie with the expected attributes
- Device A is signed out once device B logs in
"""

import logging

import pytest
from sqlalchemy.exc import OperationalError

from storefront.extensions import db
from storefront.models import Profile
from storefront.services import session_service
from storefront.services.session_service import (
    SUPERSEDED_REASON,
    SessionFailurePolicy,
    check_session_validity,
    is_token_current,
    issue_session,
)


def _store_down(*args, **kwargs):
    raise OperationalError("SELECT current_session_token", {}, Exception("database is locked"))


class _UnreachableProvider:
    """External identity service that cannot be reached."""

    def get_current_user(self):
        raise ConnectionError("identity provider unreachable")

    def sign_in(self, profile):
        raise ConnectionError("identity provider unreachable")

    def sign_out(self):
        pass


# =============================================================================
# TOKEN ISSUE / COMPARISON
# =============================================================================


class TestIssueSession:

    def test_token_is_persisted_on_profile(self, customer):
        token = issue_session(customer.id)

        stored = db.session.get(Profile, customer.id).current_session_token
        assert stored == token

    def test_token_has_at_least_128_bits(self, customer):
        token = issue_session(customer.id)
        assert len(token) == 64
        int(token, 16)

    def test_tokens_are_unique_per_login(self, customer):
        tokens = {issue_session(customer.id) for _ in range(5)}
        assert len(tokens) == 5

    def test_unknown_profile_raises(self, db_session):
        with pytest.raises(ValueError):
            issue_session("00000000-0000-0000-0000-000000000000")

    def test_newest_token_valid_and_all_older_superseded(self, customer):
        old_tokens = [issue_session(customer.id) for _ in range(3)]
        newest = issue_session(customer.id)

        assert check_session_validity(newest, customer.id).valid

        for token in old_tokens:
            check = check_session_validity(token, customer.id)
            assert not check.valid
            assert check.reason == SUPERSEDED_REASON


class TestIsTokenCurrent:

    def test_no_stored_token_accepts_anything(self):
        assert is_token_current(None, "abc")
        assert is_token_current("", "abc")

    def test_matching_token(self):
        assert is_token_current("abc", "abc")

    def test_different_token(self):
        assert not is_token_current("abc", "abd")


# =============================================================================
# VALIDITY RULES
# =============================================================================


class TestCheckSessionValidity:

    def test_missing_client_token_is_valid(self, customer):
        issue_session(customer.id)
        assert check_session_validity(None, customer.id).valid
        assert check_session_validity("", customer.id).valid

    def test_missing_user_is_valid(self, db_session):
        assert check_session_validity("some-token", None).valid

    def test_profile_without_recorded_login_is_valid(self, customer):
        assert check_session_validity("cookie-from-elsewhere", customer.id).valid

    def test_store_failure_fails_open_and_logs(self, customer, monkeypatch, caplog):
        issue_session(customer.id)
        monkeypatch.setattr(session_service, "_load_current_token", _store_down)

        with caplog.at_level(logging.WARNING):
            check = check_session_validity("stale-token", customer.id)

        assert check.valid
        assert any("failing open" in record.getMessage() for record in caplog.records)

    def test_store_failure_fails_closed_when_configured(self, customer, monkeypatch):
        issue_session(customer.id)
        monkeypatch.setattr(session_service, "_load_current_token", _store_down)

        check = check_session_validity(
            "any-token", customer.id, policy=SessionFailurePolicy.FAIL_CLOSED
        )

        assert not check.valid
        assert check.reason == session_service.UNVERIFIED_REASON

    def test_policy_read_from_config(self, app, customer, monkeypatch):
        monkeypatch.setitem(app.config, "SESSION_FAILURE_POLICY", "fail_closed")
        monkeypatch.setattr(session_service, "_load_current_token", _store_down)

        assert not check_session_validity("any-token", customer.id).valid


# =============================================================================
# COOKIE + ROUTES
# =============================================================================


class TestSessionCookie:

    def _session_cookie(self, response) -> str:
        cookies = [c for c in response.headers.getlist("Set-Cookie") if c.startswith("app_session_token=")]
        assert len(cookies) == 1
        return cookies[0]

    def test_login_sets_http_only_lax_cookie_for_seven_days(self, client, shopper, login):
        response = login(client, shopper.email)
        assert response.status_code == 200
        assert response.json["success"] is True

        cookie = self._session_cookie(response)
        token = cookie.split(";", 1)[0].split("=", 1)[1]
        assert token == db.session.get(Profile, shopper.id).current_session_token
        assert "HttpOnly" in cookie
        assert "SameSite=Lax" in cookie
        assert "Path=/" in cookie
        assert "Max-Age=604800" in cookie

    def test_cookie_is_secure_when_configured(self, app, client, shopper, login, monkeypatch):
        monkeypatch.setitem(app.config, "SESSION_TOKEN_COOKIE_SECURE", True)

        response = login(client, shopper.email)

        assert "Secure" in self._session_cookie(response)

    def test_failed_token_issue_leaves_client_signed_out(self, client, shopper, login, monkeypatch):
        monkeypatch.setattr(session_service, "issue_session", _store_down)

        response = login(client, shopper.email)

        assert response.status_code == 500
        live_cookies = [
            c for c in response.headers.getlist("Set-Cookie")
            if c.startswith("app_session_token=") and "Max-Age=0" not in c
        ]
        assert live_cookies == []
        follow_up = client.get("/api/auth/me")
        assert follow_up.status_code == 401
        assert follow_up.json["message"] == "Authentication required"

    def test_bad_password_issues_no_cookie(self, client, shopper, login):
        response = login(client, shopper.email, "WrongPassword1")
        assert response.status_code == 401
        assert not [c for c in response.headers.getlist("Set-Cookie") if c.startswith("app_session_token=")]
        assert db.session.get(Profile, shopper.id).current_session_token is None


class TestSingleActiveSession:

    def test_second_device_login_signs_out_first_device(self, app, shopper, login):
        device_a = app.test_client()
        device_b = app.test_client()

        assert login(device_a, shopper.email).status_code == 200
        assert device_a.get("/api/auth/me").status_code == 200

        assert login(device_b, shopper.email).status_code == 200

        rejected = device_a.get("/api/auth/me")
        assert rejected.status_code == 401
        assert rejected.json["message"] == SUPERSEDED_REASON
        assert rejected.json["redirect"].startswith("/login?error=")

        accepted = device_b.get("/api/auth/me")
        assert accepted.status_code == 200
        assert accepted.json["user"]["id"] == shopper.id

    def test_superseded_device_is_signed_out(self, app, shopper, login):
        device_a = app.test_client()
        device_b = app.test_client()
        login(device_a, shopper.email)
        login(device_b, shopper.email)

        assert device_a.get("/api/auth/me").status_code == 401

        # Identity and cookie are gone: the next request is simply anonymous
        follow_up = device_a.get("/api/auth/me")
        assert follow_up.status_code == 401
        assert follow_up.json["message"] == "Authentication required"

    def test_session_endpoint_reports_supersession(self, app, shopper, login):
        device_a = app.test_client()
        device_b = app.test_client()
        login(device_a, shopper.email)
        login(device_b, shopper.email)

        response = device_a.get("/api/auth/session")

        assert response.status_code == 401
        assert response.json["session_valid"] is False
        assert device_b.get("/api/auth/session").json["session_valid"] is True

    def test_anonymous_session_check_is_valid(self, client, db_session):
        response = client.get("/api/auth/session")
        assert response.status_code == 200
        assert response.json["session_valid"] is True
        assert response.json["user"] is None

    def test_logout_then_protected_route_requires_auth(self, shopper_client):
        assert shopper_client.post("/api/auth/logout").status_code == 200
        assert shopper_client.get("/api/auth/me").status_code == 401

    def test_unreachable_identity_provider_fails_open(self, app, client, db_session, monkeypatch, caplog):
        monkeypatch.setitem(app.extensions, "identity_provider", _UnreachableProvider())

        with caplog.at_level(logging.WARNING):
            response = client.get("/api/auth/session")

        assert response.status_code == 200
        assert response.json["session_valid"] is True
        assert response.json["user"] is None
        assert any("identity lookup" in record.getMessage() for record in caplog.records)
        assert client.get("/api/auth/me").status_code == 401

    def test_unreachable_identity_provider_fails_closed(self, app, client, db_session, monkeypatch):
        monkeypatch.setitem(app.extensions, "identity_provider", _UnreachableProvider())
        monkeypatch.setitem(app.config, "SESSION_FAILURE_POLICY", "fail_closed")

        response = client.get("/api/auth/session")

        assert response.status_code == 401
        assert response.json["message"] == session_service.UNVERIFIED_REASON

    def test_store_failure_during_request_keeps_user_signed_in(self, app, shopper, login, monkeypatch):
        device_a = app.test_client()
        device_b = app.test_client()
        login(device_a, shopper.email)
        login(device_b, shopper.email)
        monkeypatch.setattr(session_service, "_load_current_token", _store_down)

        assert device_a.get("/api/auth/me").status_code == 200
