# backend/meato/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/meato.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///meato.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Order charges (cents). Zero unless the deployment configures them.
    DELIVERY_FEE_STANDARD_CENTS = _env_int("DELIVERY_FEE_STANDARD_CENTS", 0)
    DELIVERY_FEE_FAST_CENTS = _env_int("DELIVERY_FEE_FAST_CENTS", 0)
    HANDLING_FEE_CENTS = _env_int("HANDLING_FEE_CENTS", 0)

    # Reject checkout for addresses outside every delivery zone
    REQUIRE_DELIVERY_ZONE = _env_bool("REQUIRE_DELIVERY_ZONE", False)

    # Notifications: webhook transport when set, log-only otherwise
    NOTIFY_WEBHOOK_URL = os.environ.get("NOTIFY_WEBHOOK_URL")
    NOTIFY_WEBHOOK_TIMEOUT = float(os.environ.get("NOTIFY_WEBHOOK_TIMEOUT", "5"))
    NOTIFY_ADMIN_CONTACT = os.environ.get("NOTIFY_ADMIN_CONTACT", "contact@meato.local")

    SESSION_ABSOLUTE_TIMEOUT_HOURS = _env_int("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _env_int("SESSION_IDLE_TIMEOUT_HOURS", 2)
