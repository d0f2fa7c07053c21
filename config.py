"""
Application configuration: environment-aware settings.

All environment variables are documented here. See .env.example for a template.
"""

from __future__ import annotations

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    DATABASE = os.environ.get("DATABASE", str(BASE_DIR / "engine.db"))
    DB_BUSY_TIMEOUT = float(os.environ.get("DB_BUSY_TIMEOUT", "5"))

    # Upload limits (payloads only carry content references)
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1 MB

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Identity gateway: the authenticated provider user id arrives in a header
    IDENTITY_HEADER = os.environ.get("IDENTITY_HEADER", "X-User-Id")
    GUEST_HEADER = os.environ.get("GUEST_HEADER", "X-User-Guest")
    EMAIL_HEADER = os.environ.get("EMAIL_HEADER", "X-User-Email")
    ADMIN_USER_IDS = [u for u in os.environ.get("ADMIN_USER_IDS", "").split(",") if u]

    # Catalog / engine
    SEED_DEFAULT_CATALOG = _env_bool("SEED_DEFAULT_CATALOG", True)
    DEFAULT_GRADE_LEVEL = os.environ.get("DEFAULT_GRADE_LEVEL", "middle")

    # Maintenance
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", False)
    SOLVER_PAYLOAD_RETENTION_DAYS = int(os.environ.get("SOLVER_PAYLOAD_RETENTION_DAYS", "180"))
    ANALYTICS_RETENTION_DAYS = int(os.environ.get("ANALYTICS_RETENTION_DAYS", "730"))

    # Rate limiting (defaults to in-memory)
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    SUBMISSION_RATE_LIMIT = os.environ.get("SUBMISSION_RATE_LIMIT", "30 per minute")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")

        if not cls.IDENTITY_HEADER:
            errors.append("IDENTITY_HEADER must name the header set by the identity gateway.")

        if cls.SOLVER_PAYLOAD_RETENTION_DAYS <= 0:
            errors.append("SOLVER_PAYLOAD_RETENTION_DAYS must be positive.")

        if cls.ANALYTICS_RETENTION_DAYS <= 0:
            errors.append("ANALYTICS_RETENTION_DAYS must be positive.")

        if cls.RATELIMIT_STORAGE_URI.startswith("memory://"):
            warnings.warn("RATELIMIT_STORAGE_URI is in-memory; limits are per worker process.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    SEED_DEFAULT_CATALOG = False
    SCHEDULER_ENABLED = False
    RATELIMIT_ENABLED = False


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
