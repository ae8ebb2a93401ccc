# backend/restopos/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///restopos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Flat rates in basis points (1000 = 10%)
    TAX_RATE_BPS = _env_int("TAX_RATE_BPS", 1000)
    SERVICE_CHARGE_RATE_BPS = _env_int("SERVICE_CHARGE_RATE_BPS", 500)

    # "transaction": one DB transaction per order creation
    # "saga": per-step commits with compensation on failure
    ORDER_CREATION_MODE = os.environ.get("ORDER_CREATION_MODE", "transaction")

    DB_RETRY_ATTEMPTS = _env_int("DB_RETRY_ATTEMPTS", 3)
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))

    ORDER_LIST_MAX_LIMIT = 100

    SESSION_ABSOLUTE_HOURS = _env_int("SESSION_ABSOLUTE_HOURS", 24)
    SESSION_IDLE_HOURS = _env_int("SESSION_IDLE_HOURS", 8)

    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://localhost:4000,http://localhost:5173",
        ).split(",")
        if origin.strip()
    }
