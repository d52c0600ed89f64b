# backend/pos_tracker/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pos_tracker.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pos_tracker.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Apps Script web app that serves the bank's payment ledger
    LEDGER_FEED_URL = os.environ.get("LEDGER_FEED_URL") or os.environ.get("GOOGLE_SCRIPT_URL")
    LEDGER_FEED_TIMEOUT_SECONDS = float(os.environ.get("LEDGER_FEED_TIMEOUT_SECONDS", "30"))

    # Seed values for the settings table; the table is authoritative afterwards
    DEFAULT_UNIT_PRICE = os.environ.get("DEFAULT_UNIT_PRICE", "16825")
    EXPECTED_PROCUREMENT_COUNT = int(os.environ.get("EXPECTED_PROCUREMENT_COUNT", "600"))

    # Bank account printed on manual payment rows pushed to the ledger sheet
    CREDITED_TO_ACCOUNT = os.environ.get("CREDITED_TO_ACCOUNT", "202959988")
