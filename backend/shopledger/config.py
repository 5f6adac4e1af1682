# backend/shopledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bounded retries for lock/serialization conflicts during sale, void and stock commits
    SALE_COMMIT_ATTEMPTS = int(os.environ.get("SALE_COMMIT_ATTEMPTS", "3"))
    SALE_RETRY_BACKOFF = float(os.environ.get("SALE_RETRY_BACKOFF", "0.1"))

    # "thread" hands usage-counter increments to a background pool,
    # "inline" runs them right after the sale commits (tests, CLI)
    USAGE_DISPATCH_MODE = os.environ.get("USAGE_DISPATCH_MODE", "thread")
    USAGE_WORKERS = int(os.environ.get("USAGE_WORKERS", "2"))

    DEFAULT_SHOP_TIMEZONE = os.environ.get("DEFAULT_SHOP_TIMEZONE", "Africa/Mbabane")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100
