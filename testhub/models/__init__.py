"""
Relational schema for the SQL repository backend.

All tables are declared on the shared Flask-SQLAlchemy ``db`` object so
``db.create_all()`` in the app factory sees them once the model modules
are imported.
"""

from datetime import timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def as_utc(value):
    """SQLite drops tzinfo on DateTime(timezone=True); reattach UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
