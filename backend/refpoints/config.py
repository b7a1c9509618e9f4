# backend/refpoints/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/refpoints.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///refpoints.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Referral / coupon codes
    REFERRAL_CODE_LENGTH = int(os.environ.get("REFERRAL_CODE_LENGTH", "8"))
    CODE_GENERATION_ATTEMPTS = int(os.environ.get("CODE_GENERATION_ATTEMPTS", "10"))
    DEFAULT_COUPON_USAGE_LIMIT = int(os.environ.get("DEFAULT_COUPON_USAGE_LIMIT", "100"))
    DEFAULT_REFERRAL_REWARD = int(os.environ.get("DEFAULT_REFERRAL_REWARD", "10"))

    # Row-level contention (coupon and balance updates)
    CONTENTION_RETRY_ATTEMPTS = int(os.environ.get("CONTENTION_RETRY_ATTEMPTS", "3"))
    CONTENTION_BACKOFF_SECONDS = float(os.environ.get("CONTENTION_BACKOFF_SECONDS", "0.05"))

    # Outbound messaging: "log" prints to the app log, "http" posts to NOTIFIER_URL
    NOTIFIER_BACKEND = os.environ.get("NOTIFIER_BACKEND", "log")
    NOTIFIER_URL = os.environ.get("NOTIFIER_URL")
    NOTIFIER_TOKEN = os.environ.get("NOTIFIER_TOKEN")
    NOTIFIER_TIMEOUT_SECONDS = float(os.environ.get("NOTIFIER_TIMEOUT_SECONDS", "5"))

    BROADCAST_CONCURRENCY = int(os.environ.get("BROADCAST_CONCURRENCY", "1"))
    BROADCAST_DELAY_SECONDS = float(os.environ.get("BROADCAST_DELAY_SECONDS", "2.0"))
