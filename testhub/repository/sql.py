"""
Relational repository backend (SQLAlchemy).

Architecture:
  Each primitive opens one short Session, performs its statement(s),
  commits and closes. Nothing is held open between primitives, so a
  composite operation is a sequence of independent commits.
  The blocking ORM call runs in a worker thread via ``asyncio.to_thread``.

  Driver errors are translated here and nowhere else:
    IntegrityError   → ConflictError
    SQLAlchemyError  → BackendUnavailableError
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from testhub.core.exceptions import BackendUnavailableError, ConflictError
from testhub.models.audit import ActivityLog
from testhub.models.auth import User
from testhub.models.collaboration import Whiteboard
from testhub.models.folders import Folder, TestCaseFolder
from testhub.models.testing import (
    Bug,
    TestCase,
    TestRun,
    TestRunResult,
    TestStep,
    TestVersion,
)
from testhub.repository.interface import TestHubRepository

logger = logging.getLogger(__name__)


def _driver_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


# ── Statement helpers (run inside a session) ─────────────────────────────


def _get(session, model, row_id):
    row = session.get(model, row_id)
    return row.to_entity() if row is not None else None


def _all(session, stmt):
    return [row.to_entity() for row in session.scalars(stmt)]


def _insert(session, model, values):
    row = model(**values)
    session.add(row)
    session.flush()
    return row.to_entity()


def _update(session, model, row_id, values):
    row = session.get(model, row_id)
    if row is None:
        return None
    for key, value in values.items():
        setattr(row, key, value)
    session.flush()
    return row.to_entity()


def _delete_one(session, model, row_id) -> bool:
    return session.execute(delete(model).where(model.id == row_id)).rowcount > 0


def _delete_where(session, model, *criteria) -> int:
    return session.execute(delete(model).where(*criteria)).rowcount


def _first(session, stmt):
    row = session.scalars(stmt).first()
    return row.to_entity() if row is not None else None


def _check_user_unique(session, values, user_id=None):
    for key in ("username", "email"):
        if key not in values:
            continue
        stmt = select(User.id).where(getattr(User, key) == values[key])
        if user_id is not None:
            stmt = stmt.where(User.id != user_id)
        if session.scalars(stmt).first() is not None:
            raise ConflictError("User", key, values[key])


def _insert_user(session, values):
    _check_user_unique(session, values)
    return _insert(session, User, values)


def _update_user(session, user_id, values):
    if session.get(User, user_id) is None:
        return None
    _check_user_unique(session, values, user_id)
    return _update(session, User, user_id, values)


def _insert_steps(session, test_case_id, steps):
    rows = [TestStep(test_case_id=test_case_id, **step) for step in steps]
    session.add_all(rows)
    session.flush()
    return [row.to_entity() for row in rows]


def _count_by_folder(session):
    stmt = (
        select(TestCaseFolder.folder_id, func.count(TestCaseFolder.id))
        .group_by(TestCaseFolder.folder_id)
        .order_by(TestCaseFolder.folder_id)
    )
    return [{"folder_id": fid, "test_count": n} for fid, n in session.execute(stmt)]


class SqlRepository(TestHubRepository):
    """Repository over any SQLAlchemy engine (SQLite, PostgreSQL)."""

    backend_name = "sql"

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_engine(cls, engine) -> "SqlRepository":
        return cls(sessionmaker(bind=engine, expire_on_commit=False))

    def _call(self, operation, fn, args, conflict):
        try:
            with self._session_factory() as session:
                result = fn(session, *args)
                session.commit()
                return result
        except IntegrityError as exc:
            resource, field = conflict or (operation, "unique")
            logger.warning(
                "Unique constraint violated",
                extra={"operation": operation, "error": _driver_message(exc)},
            )
            raise ConflictError(resource, field) from exc
        except SQLAlchemyError as exc:
            logger.error(
                "Backend call failed",
                extra={"operation": operation, "error": _driver_message(exc)},
            )
            raise BackendUnavailableError(_driver_message(exc), operation=operation) from exc

    async def _run(self, operation, fn, *args, conflict=None):
        return await asyncio.to_thread(self._call, operation, fn, args, conflict)

    # ── Users ────────────────────────────────────────────────────────────

    async def get_user(self, user_id):
        return await self._run("get_user", _get, User, user_id)

    async def get_user_by_username(self, username):
        return await self._run(
            "get_user_by_username", _first, select(User).where(User.username == username),
        )

    async def get_user_by_email(self, email):
        return await self._run("get_user_by_email", _first, select(User).where(User.email == email))

    async def list_users(self):
        return await self._run("list_users", _all, select(User).order_by(User.id))

    async def _insert_user(self, values):
        return await self._run(
            "insert_user", _insert_user, values, conflict=("User", "username/email"),
        )

    async def _update_user_row(self, user_id, values):
        return await self._run(
            "update_user", _update_user, user_id, values, conflict=("User", "username/email"),
        )

    # ── Folders ──────────────────────────────────────────────────────────

    async def get_folder(self, folder_id):
        return await self._run("get_folder", _get, Folder, folder_id)

    async def list_folders(self):
        return await self._run("list_folders", _all, select(Folder).order_by(Folder.id))

    async def count_test_cases_by_folder(self):
        return await self._run("count_test_cases_by_folder", _count_by_folder)

    async def _insert_folder(self, values):
        return await self._run("insert_folder", _insert, Folder, values)

    async def _update_folder_row(self, folder_id, values):
        return await self._run("update_folder", _update, Folder, folder_id, values)

    async def _delete_folder_row(self, folder_id):
        return await self._run("delete_folder", _delete_one, Folder, folder_id)

    # ── Folder membership ────────────────────────────────────────────────

    async def list_test_case_folders(self, test_case_id):
        stmt = (
            select(Folder)
            .join(TestCaseFolder, TestCaseFolder.folder_id == Folder.id)
            .where(TestCaseFolder.test_case_id == test_case_id)
            .order_by(Folder.id)
        )
        return await self._run("list_test_case_folders", _all, stmt)

    async def _get_folder_link(self, test_case_id, folder_id):
        stmt = select(TestCaseFolder).where(
            TestCaseFolder.test_case_id == test_case_id,
            TestCaseFolder.folder_id == folder_id,
        )
        return await self._run("get_folder_link", _first, stmt)

    async def _insert_folder_link(self, test_case_id, folder_id):
        return await self._run(
            "insert_folder_link", _insert, TestCaseFolder,
            {"test_case_id": test_case_id, "folder_id": folder_id},
            conflict=("TestCaseFolder", "test_case_id+folder_id"),
        )

    async def _delete_folder_link(self, test_case_id, folder_id):
        count = await self._run(
            "delete_folder_link", _delete_where, TestCaseFolder,
            TestCaseFolder.test_case_id == test_case_id,
            TestCaseFolder.folder_id == folder_id,
        )
        return count > 0

    async def _delete_folder_links(self, *, test_case_id=None, folder_id=None):
        criteria = []
        if test_case_id is not None:
            criteria.append(TestCaseFolder.test_case_id == test_case_id)
        if folder_id is not None:
            criteria.append(TestCaseFolder.folder_id == folder_id)
        return await self._run("delete_folder_links", _delete_where, TestCaseFolder, *criteria)

    # ── Test cases & steps ───────────────────────────────────────────────

    async def get_test_case(self, test_case_id):
        return await self._run("get_test_case", _get, TestCase, test_case_id)

    async def list_test_cases(self, status=None, folder_id=None):
        stmt = select(TestCase)
        if status is not None:
            stmt = stmt.where(TestCase.status == status)
        if folder_id is not None:
            stmt = stmt.join(TestCaseFolder, TestCaseFolder.test_case_id == TestCase.id).where(
                TestCaseFolder.folder_id == folder_id
            )
        return await self._run("list_test_cases", _all, stmt.order_by(TestCase.id))

    async def list_recent_test_cases(self, limit=5):
        stmt = select(TestCase).order_by(TestCase.created_at.desc(), TestCase.id.desc()).limit(limit)
        return await self._run("list_recent_test_cases", _all, stmt)

    async def list_test_steps(self, test_case_id):
        stmt = (
            select(TestStep)
            .where(TestStep.test_case_id == test_case_id)
            .order_by(TestStep.step_number)
        )
        return await self._run("list_test_steps", _all, stmt)

    async def _insert_test_case(self, values):
        return await self._run("insert_test_case", _insert, TestCase, values)

    async def _update_test_case_row(self, test_case_id, values):
        return await self._run("update_test_case", _update, TestCase, test_case_id, values)

    async def _delete_test_case_row(self, test_case_id):
        return await self._run("delete_test_case", _delete_one, TestCase, test_case_id)

    async def _insert_test_steps(self, test_case_id, steps):
        return await self._run(
            "insert_test_steps", _insert_steps, test_case_id, steps,
            conflict=("TestStep", "step_number"),
        )

    async def _delete_test_steps(self, test_case_id):
        return await self._run(
            "delete_test_steps", _delete_where, TestStep, TestStep.test_case_id == test_case_id,
        )

    # ── Versions ─────────────────────────────────────────────────────────

    async def _insert_test_version(self, values):
        return await self._run("insert_test_version", _insert, TestVersion, values)

    async def _list_test_version_rows(self, test_case_id):
        stmt = (
            select(TestVersion)
            .where(TestVersion.test_case_id == test_case_id)
            .order_by(TestVersion.id)
        )
        return await self._run("list_test_versions", _all, stmt)

    async def _delete_test_versions(self, test_case_id):
        return await self._run(
            "delete_test_versions", _delete_where, TestVersion,
            TestVersion.test_case_id == test_case_id,
        )

    # ── Runs & results ───────────────────────────────────────────────────

    async def get_test_run(self, run_id):
        return await self._run("get_test_run", _get, TestRun, run_id)

    async def list_test_runs(self):
        stmt = select(TestRun).order_by(TestRun.started_at.desc(), TestRun.id.desc())
        return await self._run("list_test_runs", _all, stmt)

    async def _insert_test_run(self, values):
        return await self._run("insert_test_run", _insert, TestRun, values)

    async def _update_test_run_row(self, run_id, values):
        return await self._run("update_test_run", _update, TestRun, run_id, values)

    async def list_run_results(self, run_id=None):
        stmt = select(TestRunResult)
        if run_id is not None:
            stmt = stmt.where(TestRunResult.run_id == run_id)
        stmt = stmt.order_by(TestRunResult.executed_at.desc(), TestRunResult.id.desc())
        return await self._run("list_run_results", _all, stmt)

    async def _insert_run_result(self, values):
        return await self._run("insert_run_result", _insert, TestRunResult, values)

    # ── Bugs ─────────────────────────────────────────────────────────────

    async def get_bug(self, bug_id):
        return await self._run("get_bug", _get, Bug, bug_id)

    async def list_bugs(self, status=None, test_case_id=None):
        stmt = select(Bug)
        if status is not None:
            stmt = stmt.where(Bug.status == status)
        if test_case_id is not None:
            stmt = stmt.where(Bug.test_case_id == test_case_id)
        stmt = stmt.order_by(Bug.reported_at.desc(), Bug.id.desc())
        return await self._run("list_bugs", _all, stmt)

    async def _insert_bug(self, values):
        return await self._run("insert_bug", _insert, Bug, values)

    async def _update_bug_row(self, bug_id, values):
        return await self._run("update_bug", _update, Bug, bug_id, values)

    # ── Whiteboards ──────────────────────────────────────────────────────

    async def get_whiteboard(self, whiteboard_id):
        return await self._run("get_whiteboard", _get, Whiteboard, whiteboard_id)

    async def list_whiteboards(self):
        stmt = select(Whiteboard).order_by(Whiteboard.updated_at.desc(), Whiteboard.id.desc())
        return await self._run("list_whiteboards", _all, stmt)

    async def _insert_whiteboard(self, values):
        return await self._run("insert_whiteboard", _insert, Whiteboard, values)

    async def _update_whiteboard_row(self, whiteboard_id, values):
        return await self._run("update_whiteboard", _update, Whiteboard, whiteboard_id, values)

    # ── Activity ─────────────────────────────────────────────────────────

    async def list_recent_activities(self, limit=10):
        stmt = (
            select(ActivityLog)
            .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .limit(limit)
        )
        return await self._run("list_recent_activities", _all, stmt)

    async def _insert_activity(self, values):
        return await self._run("insert_activity", _insert, ActivityLog, values)
