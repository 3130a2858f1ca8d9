# Overview: Identity-provider seam used by the session guard and route decorators.

"""
The storefront does not own authentication state beyond the single-session
token. "Who is signed in" is answered by an identity provider with a tiny
surface: get_current_user(), sign_in(profile) and sign_out().

FlaskSessionIdentityProvider is the default: it keeps the signed-in profile
id in Flask's signed session cookie. Deployments fronted by an external auth
service register their own provider under app.extensions["identity_provider"].
"""

from __future__ import annotations

from typing import Protocol

from flask import current_app, session

from ..extensions import db
from ..models import Profile


SESSION_PROFILE_KEY = "profile_id"


class IdentityProvider(Protocol):
    def get_current_user(self) -> Profile | None: ...

    def sign_in(self, profile: Profile) -> None: ...

    def sign_out(self) -> None: ...


class FlaskSessionIdentityProvider:
    """Identity backed by Flask's signed session cookie."""

    def get_current_user(self) -> Profile | None:
        profile_id = session.get(SESSION_PROFILE_KEY)
        if not profile_id:
            return None
        profile = db.session.get(Profile, profile_id)
        if profile is None or not profile.is_active:
            return None
        return profile

    def sign_in(self, profile: Profile) -> None:
        session.clear()
        session[SESSION_PROFILE_KEY] = profile.id
        session.permanent = True

    def sign_out(self) -> None:
        session.pop(SESSION_PROFILE_KEY, None)


def get_identity_provider() -> IdentityProvider:
    return current_app.extensions["identity_provider"]
