# backend/orderflow/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the backend by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///orderflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Display currency for amounts; amounts themselves are stored as decimals
    CURRENCY_CODE = os.environ.get("CURRENCY_CODE", "EGP")

    # Installment labels written by the schedule generator
    FIRST_INSTALLMENT_LABEL = os.environ.get("FIRST_INSTALLMENT_LABEL", "1")
    ADVANCE_INSTALLMENT_LABEL = os.environ.get("ADVANCE_INSTALLMENT_LABEL", "Advance Payment")
