# Overview: Service-layer operations for session; single-active-session enforcement.

"""
Single Active Session Guard

WHY: A profile may be signed in on one device at a time. Every successful
login issues a fresh opaque token, stores it on Profile.current_session_token
and hands it to the client in an HttpOnly cookie. A later login elsewhere
overwrites the stored token, so the older cookie no longer matches and the
older device is signed out on its next protected request.

RULES:
- No cookie -> valid (the identity provider alone decides who is signed in)
- No signed-in user -> valid (nothing to reconcile)
- Stored token set and different from the cookie -> superseded
- Lookup failure -> SessionFailurePolicy decides, and the failure is logged

All state lives on the Profile row; there is no process-wide session table.
"""

from __future__ import annotations

import enum
import secrets
from dataclasses import dataclass

from flask import current_app, request
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Profile
from .identity import IdentityProvider


SUPERSEDED_REASON = "Your account was signed in on another device. You have been signed out."
UNVERIFIED_REASON = "Session could not be verified. Please sign in again."


class SessionFailurePolicy(str, enum.Enum):
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


@dataclass(frozen=True)
class SessionCheck:
    valid: bool
    reason: str | None = None

    def to_dict(self) -> dict:
        return {"valid": self.valid, "reason": self.reason}


VALID = SessionCheck(valid=True)


def generate_token() -> str:
    """64 hex characters (32 bytes of entropy) from the OS CSPRNG."""
    return secrets.token_hex(32)


def configured_policy() -> SessionFailurePolicy:
    return SessionFailurePolicy(current_app.config.get("SESSION_FAILURE_POLICY", "fail_open"))


def issue_session(user_id: str) -> str:
    """
    Record a new login for the profile and return its session token.

    Any token issued earlier for the same profile stops being current.

    Raises ValueError if the profile does not exist.
    """
    profile = db.session.get(Profile, user_id)
    if profile is None:
        raise ValueError("Profile not found")

    token = generate_token()
    profile.current_session_token = token
    db.session.commit()
    return token


def is_token_current(stored_token: str | None, presented_token: str) -> bool:
    """A presented token is stale only when a stored token exists and differs."""
    if not stored_token:
        return True
    return secrets.compare_digest(stored_token.encode("utf-8"), presented_token.encode("utf-8"))


def _load_current_token(user_id: str) -> str | None:
    return db.session.query(Profile.current_session_token).filter_by(id=user_id).scalar()


def _on_failure(policy: SessionFailurePolicy, what: str, user_id: str | None) -> SessionCheck:
    if policy is SessionFailurePolicy.FAIL_CLOSED:
        current_app.logger.warning(
            "Session check failed (%s) for user %s; failing closed", what, user_id,
            exc_info=True,
        )
        return SessionCheck(valid=False, reason=UNVERIFIED_REASON)

    current_app.logger.warning(
        "Session check failed (%s) for user %s; failing open", what, user_id,
        exc_info=True,
    )
    return VALID


def check_session_validity(
    client_token: str | None,
    user_id: str | None,
    *,
    policy: SessionFailurePolicy | None = None,
) -> SessionCheck:
    """
    Compare the client's cookie token with the token stored for user_id.

    Returns SessionCheck(valid=False, reason=SUPERSEDED_REASON) when a newer
    login replaced the client's token. Store failures never raise; they are
    logged and resolved by policy (default: configured SESSION_FAILURE_POLICY).
    """
    if not client_token:
        return VALID
    if not user_id:
        return VALID

    policy = policy or configured_policy()

    try:
        stored_token = _load_current_token(user_id)
    except SQLAlchemyError:
        db.session.rollback()
        return _on_failure(policy, "token lookup", user_id)

    if not is_token_current(stored_token, client_token):
        return SessionCheck(valid=False, reason=SUPERSEDED_REASON)

    return VALID


def read_session_cookie() -> str | None:
    return request.cookies.get(current_app.config["SESSION_TOKEN_COOKIE_NAME"])


def guard_current_request(
    provider: IdentityProvider,
    *,
    policy: SessionFailurePolicy | None = None,
) -> tuple[Profile | None, SessionCheck]:
    """
    Run the session check for the active request.

    Returns (current_user, check). Identity-provider failures (store errors
    for the default provider, transport errors for external ones) are
    resolved by the same policy as store failures.
    """
    client_token = read_session_cookie()
    policy = policy or configured_policy()

    try:
        user = provider.get_current_user()
    except Exception:
        db.session.rollback()
        return None, _on_failure(policy, "identity lookup", None)

    if user is None:
        return None, VALID

    return user, check_session_validity(client_token, user.id, policy=policy)


def set_session_cookie(response, token: str):
    """HttpOnly, SameSite=Lax, path "/", 7-day max-age by default."""
    config = current_app.config
    response.set_cookie(
        config["SESSION_TOKEN_COOKIE_NAME"],
        token,
        max_age=int(config["SESSION_TOKEN_MAX_AGE"].total_seconds()),
        path="/",
        secure=config["SESSION_TOKEN_COOKIE_SECURE"],
        httponly=True,
        samesite="Lax",
    )
    return response


def clear_session_cookie(response):
    config = current_app.config
    response.delete_cookie(
        config["SESSION_TOKEN_COOKIE_NAME"],
        path="/",
        secure=config["SESSION_TOKEN_COOKIE_SECURE"],
        httponly=True,
        samesite="Lax",
    )
    return response


def end_session(provider: IdentityProvider, response):
    """Sign out at the identity provider and drop the session cookie."""
    provider.sign_out()
    return clear_session_cookie(response)
