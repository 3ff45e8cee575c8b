# backend/timebill/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/timebill.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///timebill.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SQLite waits on a locked database instead of failing immediately
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}} if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}

    # Invoicing
    INVOICE_TAX_RATE = Decimal(os.environ.get("INVOICE_TAX_RATE", "0.25"))
    INVOICE_DUE_DAYS = int(os.environ.get("INVOICE_DUE_DAYS", "30"))
    INVOICE_CURRENCY = os.environ.get("INVOICE_CURRENCY", "EUR")
    DEFAULT_HOURLY_RATE = Decimal(os.environ.get("DEFAULT_HOURLY_RATE", "50.00"))

    # Whole-operation retry on lock contention
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "5"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.05"))
