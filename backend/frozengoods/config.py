# backend/frozengoods/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///frozengoods.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Products at or below this quantity are reorder candidates
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))

    # Markup applied to distributor price when a product is created without a price.
    # Basis points: 2000 = 20%
    PRICE_MARKUP_BPS = int(os.environ.get("PRICE_MARKUP_BPS", "2000"))

    DEFAULT_CUSTOMER_NAME = os.environ.get("DEFAULT_CUSTOMER_NAME", "Walk-in Customer")

    # Retries for deadlocks / optimistic locking conflicts
    LOCK_RETRY_ATTEMPTS = int(os.environ.get("LOCK_RETRY_ATTEMPTS", "3"))

    CORS_ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    ]
