# backend/storefront/config.py
from __future__ import annotations
import os
from datetime import timedelta


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3 by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Single-active-session cookie
    SESSION_TOKEN_COOKIE_NAME = "app_session_token"
    SESSION_TOKEN_MAX_AGE = timedelta(days=7)
    SESSION_TOKEN_COOKIE_SECURE = _env_flag("SESSION_TOKEN_COOKIE_SECURE", True)

    # Identity cookie lives as long as the session token
    PERMANENT_SESSION_LIFETIME = SESSION_TOKEN_MAX_AGE

    # "fail_open" keeps users signed in when the token lookup itself fails;
    # "fail_closed" signs them out instead.
    SESSION_FAILURE_POLICY = os.environ.get("SESSION_FAILURE_POLICY", "fail_open")

    ORDER_PAYMENT_TIMEOUT_MINUTES = int(os.environ.get("ORDER_PAYMENT_TIMEOUT_MINUTES", "30"))

    # When False, admin status writes skip the transition graph (legacy override).
    ORDER_STATUS_ENFORCE_TRANSITIONS = _env_flag("ORDER_STATUS_ENFORCE_TRANSITIONS", True)
