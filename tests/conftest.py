"""
Shared pytest fixtures for the Test Hub test suite.

Provides:
    - app: Flask application (session-scoped)
    - repo: a fresh repository, parameterized over the memory and sql backends
    - make_test_case: factory coroutine for test cases with steps
"""

import pytest

from testhub import create_app
from testhub.models import db as _db
from testhub.repository import InMemoryRepository, SqlRepository

ADMIN_ID = 1


# ── App & repository fixtures ────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(params=["memory", "sql"])
def repo(request, app):
    """Every repository test runs once per backend, on empty storage."""
    if request.param == "memory":
        yield InMemoryRepository()
        return

    with app.app_context():
        _db.drop_all()
        _db.create_all()
        engine = _db.engine
    yield SqlRepository.from_engine(engine)
    with app.app_context():
        _db.drop_all()


@pytest.fixture
def make_test_case(repo):
    """Return a coroutine that creates a test case and returns TestCaseWithSteps."""

    async def _make(title="Login", steps=None, **fields):
        data = {"title": title, "created_by": ADMIN_ID, **fields}
        created = await repo.create_test_case_with_steps(data, steps)
        assert created, created
        return created

    return _make
