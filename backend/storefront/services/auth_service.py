# Overview: Service-layer operations for auth; password hashing and credential checks.

"""
Credential checks for storefront profiles.

Passwords are bcrypt hashed (cost factor 12). Session tokens are handled
separately by session_service, which is called after a successful
authenticate().
"""

import bcrypt
import re
from ..extensions import db
from ..models import Profile
from storefront.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Require 8+ characters with an uppercase letter, a lowercase letter and a digit.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe; malformed hashes simply fail."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_profile(
    email: str,
    password: str,
    *,
    full_name: str | None = None,
    is_admin: bool = False,
) -> Profile:
    """
    Create a profile with a bcrypt password hash.

    Raises:
        ValueError: If the email is already registered
        PasswordValidationError: If password doesn't meet requirements
    """
    email = email.strip().lower()
    if db.session.query(Profile).filter_by(email=email).first():
        raise ValueError("Email already registered")

    profile = Profile(
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        is_admin=is_admin,
    )
    db.session.add(profile)
    db.session.commit()
    return profile


def authenticate(email: str, password: str) -> Profile | None:
    """
    Return the active profile matching email/password, or None.

    Updates last_login_at on success.
    """
    profile = db.session.query(Profile).filter_by(email=email.strip().lower()).first()
    if not profile or not profile.is_active:
        return None

    if not verify_password(password, profile.password_hash):
        return None

    profile.last_login_at = utcnow()
    db.session.commit()
    return profile
