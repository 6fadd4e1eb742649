import os
from pathlib import Path

from werkzeug.security import generate_password_hash


BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'tagshelf.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    OWNER_PASSWORD_HASH = os.environ.get("OWNER_PASSWORD_HASH", "")
    LOGIN_MAX_ATTEMPTS = int(os.environ.get("LOGIN_MAX_ATTEMPTS", "5"))
    LOGIN_WINDOW_SECONDS = int(os.environ.get("LOGIN_WINDOW_SECONDS", "900"))
    WP_TIMEOUT = float(os.environ.get("WP_TIMEOUT", "10"))
    WP_PUBLISH_TIMEOUT = float(os.environ.get("WP_PUBLISH_TIMEOUT", "15"))
    WP_TRANSPORT = None
    MAX_IMPORT_BYTES = int(os.environ.get("MAX_IMPORT_BYTES", "10000000"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    OWNER_PASSWORD_HASH = generate_password_hash("secret")
    LOGIN_MAX_ATTEMPTS = 3
