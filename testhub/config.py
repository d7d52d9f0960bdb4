"""
Test Hub
Configuration classes for the Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'testhub_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _database_url(default):
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
    }

    # Repository backend: "sql" (SQLAlchemy engine above) or "memory"
    REPOSITORY_BACKEND = os.getenv("REPOSITORY_BACKEND", "sql")

    # Load the demo data set when the app starts (empty stores only)
    SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "false").lower() == "true"

    # "json" or "readable"; unset picks readable for debug/testing, JSON otherwise
    LOG_FORMAT = os.getenv("LOG_FORMAT")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)
    # SQLite file databases reject the pool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = (
        {} if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else Config.SQLALCHEMY_ENGINE_OPTIONS
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite runs on a single shared connection
    SQLALCHEMY_ENGINE_OPTIONS = {}
    REPOSITORY_BACKEND = os.getenv("TEST_REPOSITORY_BACKEND", "sql")
    SEED_DEMO_DATA = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _database_url(None)

    # Override engine options with PostgreSQL statement timeout
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
