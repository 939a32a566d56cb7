# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Price variance tolerance. 0 means any difference raises an NCR.
    PRICE_VARIANCE_THRESHOLD_PERCENT = float(os.environ.get("PRICE_VARIANCE_THRESHOLD_PERCENT", "0"))
    PRICE_VARIANCE_THRESHOLD_AMOUNT = float(os.environ.get("PRICE_VARIANCE_THRESHOLD_AMOUNT", "0"))

    # Retry policy for LocationStock lock contention
    LOCK_RETRY_ATTEMPTS = int(os.environ.get("LOCK_RETRY_ATTEMPTS", "3"))
    LOCK_RETRY_BACKOFF = float(os.environ.get("LOCK_RETRY_BACKOFF", "0.1"))

    CURRENCY = os.environ.get("CURRENCY", "SAR")

    # Browser origins allowed to call the API (comma separated)
    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    )


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOCK_RETRY_BACKOFF = 0.0
