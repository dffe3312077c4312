# backend/dds/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/dds.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///dds.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Zero-padding of the sequence tail in YY/DEPT/TYPE/0001
    DISTRIBUTION_SEQUENCE_PAD = int(os.environ.get("DISTRIBUTION_SEQUENCE_PAD", "4"))
    # Attempts before sequence contention is given up on
    DISTRIBUTION_SEQUENCE_ATTEMPTS = int(os.environ.get("DISTRIBUTION_SEQUENCE_ATTEMPTS", "5"))

    NOTIFICATIONS_ENABLED = os.environ.get("NOTIFICATIONS_ENABLED", "1") not in {"0", "false", "False"}

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:3001,http://127.0.0.1:3001",
        ).split(",")
        if origin.strip()
    ]
