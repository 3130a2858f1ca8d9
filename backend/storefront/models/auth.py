from __future__ import annotations

import uuid

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow


def _new_profile_id() -> str:
    return str(uuid.uuid4())


class Profile(db.Model):
    """
    Customer/admin profile keyed by the identity provider's user id.

    current_session_token is owned by the session guard: it is overwritten on
    every successful login, and only the client holding that exact value has
    a live session. A NULL token means no login has been recorded yet.
    """
    __tablename__ = "profiles"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_profiles_email"),
    )

    # Opaque identity-provider id (uuid string), immutable
    id = db.Column(db.String(36), primary_key=True, default=_new_profile_id)

    email = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    current_session_token = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Profile id={self.id} email={self.email!r}>"

    def to_dict(self) -> dict:
        # Never expose the password hash or the session token
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "is_admin": self.is_admin,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }
