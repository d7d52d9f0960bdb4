"""
Test Hub domain model.

Passive value types shared by every repository backend. Backends build
these from their own storage rows and never hand out mutable state, so
an entity returned to a caller is a point-in-time copy.

Entities:
    - User, Folder, TestCaseFolder
    - TestCase, TestStep, TestVersion
    - TestRun, TestRunResult, Bug
    - Whiteboard, ActivityLog

Composite:
    - TestCaseWithSteps: a test case plus its ordered steps
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any


# ── Constants ────────────────────────────────────────────────────────────

USER_ROLES = {"system_owner", "admin", "tester", "viewer"}

TEST_CASE_STATUSES = {"passed", "failed", "pending", "blocked"}

TEST_CASE_PRIORITIES = {"critical", "high", "medium", "low"}

TEST_CASE_TYPES = {"functional", "performance", "security", "usability"}

RUN_STATUSES = {"pending", "in_progress", "completed", "aborted"}

RESULT_STATUSES = {"passed", "failed", "blocked", "skipped"}

BUG_STATUSES = {"open", "in_progress", "fixed", "closed"}

BUG_SEVERITIES = {"critical", "high", "medium", "low"}

# Fields a caller may set on a test case; version/timestamps/last_run are engine-owned.
TEST_CASE_CREATE_FIELDS = (
    "title", "description", "status", "priority", "type",
    "assigned_to", "created_by", "expected_result",
)
TEST_CASE_PATCH_FIELDS = (
    "title", "description", "status", "priority", "type",
    "assigned_to", "expected_result",
)
# Fields restored by a revert. Run-derived state is handled separately.
TEST_CASE_CONTENT_FIELDS = (
    "title", "description", "priority", "type", "assigned_to", "expected_result",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class _Entity:
    """Serialization shared by all value types."""

    def to_dict(self) -> dict:
        return {f.name: _serialize(getattr(self, f.name)) for f in fields(self)}


# ── Users & folders ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class User(_Entity):
    id: int
    username: str
    email: str
    full_name: str
    role: str = "tester"
    avatar: str | None = None
    is_active: bool = True
    last_login: datetime | None = None


@dataclass(frozen=True)
class Folder(_Entity):
    id: int
    name: str
    description: str | None
    created_by: int | None
    created_at: datetime


@dataclass(frozen=True)
class TestCaseFolder(_Entity):
    """Membership of a test case in a folder. The pair is unique."""

    id: int
    test_case_id: int
    folder_id: int


# ── Test cases ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TestCase(_Entity):
    """
    Unit of test documentation being versioned.

    ``status`` and ``last_run`` mirror the latest run result once one
    exists. ``version`` starts at 1 and grows by one per content update.
    """

    id: int
    title: str
    description: str | None
    status: str
    priority: str
    type: str
    assigned_to: int | None
    created_by: int
    created_at: datetime
    updated_at: datetime
    last_run: datetime | None
    expected_result: str | None
    version: int = 1


@dataclass(frozen=True)
class TestStep(_Entity):
    id: int
    test_case_id: int
    step_number: int
    description: str
    expected_result: str | None = None


@dataclass(frozen=True)
class TestCaseWithSteps:
    test_case: TestCase
    steps: list[TestStep] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = self.test_case.to_dict()
        data["steps"] = [s.to_dict() for s in self.steps]
        return data


@dataclass(frozen=True)
class TestVersion(_Entity):
    """
    Snapshot of a test case taken just before it moved to ``version``.

    ``data`` holds the serialized pre-update test case and its steps.
    Version 1 never has a row: it is the creation state.
    """

    id: int
    test_case_id: int
    version: int
    data: dict
    created_by: int
    created_at: datetime
    change_comment: str | None = None


# ── Execution ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TestRun(_Entity):
    id: int
    name: str
    description: str | None
    status: str
    executed_by: int
    started_at: datetime
    complete_at: datetime | None = None
    duration: int | None = None


@dataclass(frozen=True)
class TestRunResult(_Entity):
    id: int
    run_id: int
    test_case_id: int
    status: str
    notes: str | None
    executed_by: int
    executed_at: datetime
    duration: int | None = None


@dataclass(frozen=True)
class Bug(_Entity):
    id: int
    title: str
    description: str
    status: str
    severity: str
    test_case_id: int | None
    test_run_result_id: int | None
    reported_by: int
    reported_at: datetime
    assigned_to: int | None
    updated_at: datetime


# ── Collaboration & audit ────────────────────────────────────────────────

@dataclass(frozen=True)
class Whiteboard(_Entity):
    id: int
    name: str
    content: Any
    created_by: int
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ActivityLog(_Entity):
    """Append-only audit record. Never updated or deleted."""

    id: int
    user_id: int
    action: str
    entity_type: str
    entity_id: int
    details: dict | None
    created_at: datetime


def snapshot_test_case(test_case: TestCase, steps: list[TestStep]) -> dict:
    """Serialize a test case and its steps for a TestVersion row."""
    data = test_case.to_dict()
    data["steps"] = [
        {
            "step_number": s.step_number,
            "description": s.description,
            "expected_result": s.expected_result,
        }
        for s in steps
    ]
    return data
