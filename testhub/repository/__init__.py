"""Repository layer: one contract, two storage backends."""

from testhub.repository.interface import TestHubRepository
from testhub.repository.memory import InMemoryRepository
from testhub.repository.sql import SqlRepository

__all__ = ["TestHubRepository", "InMemoryRepository", "SqlRepository", "build_repository"]

BACKENDS = ("sql", "memory")


def build_repository(backend: str, engine=None) -> TestHubRepository:
    """Instantiate the backend named by ``REPOSITORY_BACKEND``."""
    if backend == "memory":
        return InMemoryRepository()
    if backend == "sql":
        if engine is None:
            raise ValueError("The sql repository backend needs a SQLAlchemy engine")
        return SqlRepository.from_engine(engine)
    raise ValueError(f"Unknown repository backend: {backend!r} (expected one of {BACKENDS})")
