# Overview: Request decorators for API routes (login, single-session guard, admin).

from functools import wraps
from urllib.parse import quote

from flask import g, jsonify

from .services import session_service
from .services.identity import get_identity_provider


def login_redirect(reason: str | None) -> str:
    return f"/login?error={quote(reason or 'Session expired')}"


def superseded_response(reason: str | None):
    """Force sign-out at the identity provider and tell the client where to go."""
    response = jsonify({
        "success": False,
        "message": reason,
        "session_valid": False,
        "redirect": login_redirect(reason),
    })
    response.status_code = 401
    return session_service.end_session(get_identity_provider(), response)


def require_login(f):
    """
    Require a signed-in profile whose session token is still current.

    Sets g.current_user. Returns 401 when nobody is signed in, or when a newer
    login superseded this client's session (the client is signed out).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user, check = session_service.guard_current_request(get_identity_provider())

        if not check.valid:
            return superseded_response(check.reason)

        if user is None:
            return jsonify({"success": False, "message": "Authentication required"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require @require_login first; rejects non-admin profiles with 403."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return jsonify({"success": False, "message": "Authentication required"}), 401
        if not user.is_admin:
            return jsonify({"success": False, "message": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function
