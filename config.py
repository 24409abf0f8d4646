"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
logging and the business knobs of the sales-documents core. It uses environment variables for sensitive information
and defaults for development. In production, make sure to set the appropriate environment variables and secure the
secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'salesdocs.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection (JSON clients send the token in the X-CSRFToken header)
    WTF_CSRF_ENABLED = True

    # Service name reported by the index route
    APP_NAME = "Sales Documents"

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")  # optional rotating file

    # Email (the sender backend itself is registered on app.extensions)
    MAIL_FROM = os.environ.get("MAIL_FROM", "invoicing@localhost")

    # Documents
    SUPPORTED_LANGUAGES = ("en", "nl")
    DEFAULT_LANGUAGE = "en"

    # Attempts at allocating a document number before giving up on a race
    NUMBERING_MAX_ATTEMPTS = int(os.environ.get("NUMBERING_MAX_ATTEMPTS", "5"))

    # Attempts at a read-validate-write of one document that lost a race
    UPDATE_MAX_ATTEMPTS = 3


class TestConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_FILE = None
    NUMBERING_MAX_ATTEMPTS = 3
