"""
Test Hub
Flask Application Factory.

Usage:
    from testhub import create_app, get_repository
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config

    with app.app_context():
        repo = get_repository()
"""

import asyncio
import logging
import os

from flask import Flask, current_app
from sqlalchemy.engine import make_url

from testhub.config import config
from testhub.logging_config import configure_logging
from testhub.models import db
from testhub.repository import TestHubRepository, build_repository

logger = logging.getLogger(__name__)

EXTENSION_KEY = "testhub"


def _ensure_sqlite_dir(uri):
    """SQLite creates the database file but not its parent directory."""
    url = make_url(uri)
    if url.drivername.startswith("sqlite") and url.database not in (None, "", ":memory:"):
        if os.path.isabs(url.database):
            os.makedirs(os.path.dirname(url.database), exist_ok=True)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance with its repository stored
        in ``app.extensions["testhub"]``.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)

    # ── Import all models so create_all sees them ────────────────────────
    from testhub.models import audit as _audit_models                  # noqa: F401
    from testhub.models import auth as _auth_models                    # noqa: F401
    from testhub.models import collaboration as _collaboration_models  # noqa: F401
    from testhub.models import folders as _folder_models               # noqa: F401
    from testhub.models import testing as _testing_models              # noqa: F401

    # ── Repository ───────────────────────────────────────────────────────
    backend = app.config["REPOSITORY_BACKEND"]
    if backend == "sql":
        _ensure_sqlite_dir(app.config["SQLALCHEMY_DATABASE_URI"])
        with app.app_context():
            db.create_all()
            repository = build_repository(backend, db.engine)
    else:
        repository = build_repository(backend)
    app.extensions[EXTENSION_KEY] = repository
    logger.info("Repository ready", extra={"backend": repository.backend_name})

    if app.config.get("SEED_DEMO_DATA"):
        from testhub.services.seed import seed_demo_data
        asyncio.run(seed_demo_data(repository))

    # ── CLI ──────────────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """Load the demo users, folders and test cases into an empty store."""
        from testhub.services.seed import seed_demo_data
        summary = asyncio.run(seed_demo_data(get_repository(app)))
        logger.info(
            "Seeded %s users, %s folders, %s test cases.",
            summary["users"], summary["folders"], summary["test_cases"],
        )

    return app


def get_repository(app=None) -> TestHubRepository:
    """Return the repository of ``app`` (default: the current app)."""
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
