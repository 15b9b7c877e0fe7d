# backend/market/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/market.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///market.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SQLite: writers wait on the file lock instead of failing straight away
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 15}} if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}

    # Optimistic-conflict retry budget for basket merges and lifecycle transitions
    CONCURRENCY_RETRY_ATTEMPTS = int(os.environ.get("CONCURRENCY_RETRY_ATTEMPTS", "5"))
    CONCURRENCY_RETRY_BACKOFF = float(os.environ.get("CONCURRENCY_RETRY_BACKOFF", "0.05"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
