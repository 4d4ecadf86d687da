"""Configuration objects loaded by ``create_app``."""
from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///kasadya.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens expire after 24 hours
    TOKEN_MAX_AGE = 86400

    ENABLE_PAYMENTS = os.environ.get("ENABLE_PAYMENTS", "1") in {"1", "true", "True"}
    # Card payments go through Stripe only when a key is present
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    CURRENCY = "php"

    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "testing-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STRIPE_SECRET_KEY = None
    ENABLE_PAYMENTS = True
