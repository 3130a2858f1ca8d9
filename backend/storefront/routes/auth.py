# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Authentication API routes

Login records a new single-session token for the profile; any other device
still holding an older token is signed out on its next protected request.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import auth_service
from ..services import session_service
from ..services.identity import get_identity_provider
from ..decorators import require_login, superseded_response
from flask import g


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email/password, sign in and issue the session cookie.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"success": False, "message": "email and password required"}), 400

        profile = auth_service.authenticate(email, password)
        if not profile:
            return jsonify({"success": False, "message": "Invalid credentials"}), 401

        # A signed-in client must always hold the current token
        token = session_service.issue_session(profile.id)
        get_identity_provider().sign_in(profile)

        response = jsonify({
            "success": True,
            "message": "Login successful",
            "user": profile.to_dict(),
        })
        return session_service.set_session_cookie(response, token)

    except Exception:
        current_app.logger.exception("Failed to login user")
        response = jsonify({"success": False, "message": "Internal server error"})
        response.status_code = 500
        return session_service.end_session(get_identity_provider(), response)


@auth_bp.post("/logout")
def logout_route():
    """Sign out and drop the session cookie."""
    try:
        response = jsonify({"success": True, "message": "Logout successful"})
        return session_service.end_session(get_identity_provider(), response)

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@auth_bp.get("/session")
def session_route():
    """
    Report whether this client's session is still the current one.

    On supersession the client is signed out here and told where to redirect.
    """
    user, check = session_service.guard_current_request(get_identity_provider())

    if not check.valid:
        return superseded_response(check.reason)

    return jsonify({
        "success": True,
        "message": "Session valid",
        "session_valid": True,
        "user": user.to_dict() if user else None,
    }), 200


@auth_bp.get("/me")
@require_login
def me_route():
    return jsonify({"success": True, "message": "OK", "user": g.current_user.to_dict()}), 200
