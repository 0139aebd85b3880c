# backend/savdo/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file in the instance folder unless DATABASE_URL points at Postgres
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///savdo.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Ledger transaction discipline
    LEDGER_LOCK_TIMEOUT_MS = int(os.environ.get("LEDGER_LOCK_TIMEOUT_MS", "5000"))
    LEDGER_LOCK_RETRIES = int(os.environ.get("LEDGER_LOCK_RETRIES", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    __test__ = False  # not a pytest class

    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LEDGER_RETRY_BACKOFF = 0.0
    LOG_LEVEL = "WARNING"
