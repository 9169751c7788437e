# backend/branchpos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Head office (credential store) database
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///head_office.sqlite3",
    )

    # Branch tier: mirror users, tables, zones, sales
    SQLALCHEMY_BINDS = {
        "branch": os.environ.get("BRANCH_DATABASE_URL", "sqlite:///branch.sqlite3"),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Seconds to wait on a locked database before failing the request
    DB_TIMEOUT_SECONDS = int(os.environ.get("DB_TIMEOUT_SECONDS", "15"))

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
    DEFAULT_BRANCH_ADMIN_PASSWORD = os.environ.get("DEFAULT_BRANCH_ADMIN_PASSWORD", "Admin@12345")

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "2"))

    # Login-time mirror propagation runs on a background thread when enabled
    MIRROR_ASYNC_WRITES = _env_bool("MIRROR_ASYNC_WRITES", True)
    RECONCILE_INTERVAL_SECONDS = int(os.environ.get("RECONCILE_INTERVAL_SECONDS", "3600"))

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]
