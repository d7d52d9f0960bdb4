"""
Testing domain tables.

Models:
    - TestCase:       versioned test case with denormalized run status
    - TestStep:       ordered step within a test case
    - TestVersion:    pre-update snapshot keyed by version number
    - TestRun:        named execution batch
    - TestRunResult:  one outcome per (run, test case) execution
    - Bug:            defect optionally linked to a case and/or result

Actor columns (created_by, assigned_to, executed_by, reported_by) hold
user ids owned by the auth layer and carry no FK constraint. Run results
and bugs keep their test_case_id after the case is deleted.
"""

from datetime import datetime, timezone

from testhub import domain
from testhub.models import as_utc, db


class TestCase(db.Model):
    """Individual test case. ``version`` = 1 + recognized snapshots."""

    __tablename__ = "test_cases"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="pending",
        comment="passed | failed | pending | blocked (mirrors latest run result)",
    )
    priority = db.Column(
        db.String(20), nullable=False, default="medium",
        comment="critical | high | medium | low",
    )
    type = db.Column(
        db.String(20), nullable=False, default="functional",
        comment="functional | performance | security | usability",
    )
    assigned_to = db.Column(db.Integer, nullable=True, index=True)
    created_by = db.Column(db.Integer, nullable=False)
    expected_result = db.Column(db.Text, nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    last_run = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_entity(self) -> domain.TestCase:
        return domain.TestCase(
            id=self.id,
            title=self.title,
            description=self.description,
            status=self.status,
            priority=self.priority,
            type=self.type,
            assigned_to=self.assigned_to,
            created_by=self.created_by,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            last_run=as_utc(self.last_run),
            expected_result=self.expected_result,
            version=self.version,
        )

    def __repr__(self):
        return f"<TestCase {self.id}: {self.title[:30]} v{self.version}>"


class TestStep(db.Model):
    __tablename__ = "test_steps"
    __table_args__ = (
        db.UniqueConstraint("test_case_id", "step_number", name="uq_test_step_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_number = db.Column(db.Integer, nullable=False, comment="1-based position")
    description = db.Column(db.Text, nullable=False)
    expected_result = db.Column(db.Text, nullable=True)

    def to_entity(self) -> domain.TestStep:
        return domain.TestStep(
            id=self.id,
            test_case_id=self.test_case_id,
            step_number=self.step_number,
            description=self.description,
            expected_result=self.expected_result,
        )

    def __repr__(self):
        return f"<TestStep {self.id}: case#{self.test_case_id} step#{self.step_number}>"


class TestVersion(db.Model):
    """
    Immutable snapshot row. Not unique on (test_case_id, version): a
    failed patch can leave an orphan that a later update supersedes.
    """

    __tablename__ = "test_versions"
    __table_args__ = (
        db.Index("idx_test_version_case_version", "test_case_id", "version"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False,
    )
    version = db.Column(db.Integer, nullable=False)
    data = db.Column(db.JSON, nullable=False, comment="Pre-update test case + steps")
    created_by = db.Column(db.Integer, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    change_comment = db.Column(db.Text, nullable=True)

    def to_entity(self) -> domain.TestVersion:
        return domain.TestVersion(
            id=self.id,
            test_case_id=self.test_case_id,
            version=self.version,
            data=dict(self.data or {}),
            created_by=self.created_by,
            created_at=as_utc(self.created_at),
            change_comment=self.change_comment,
        )

    def __repr__(self):
        return f"<TestVersion {self.id}: case#{self.test_case_id} v{self.version}>"


class TestRun(db.Model):
    """Lifecycle: pending → in_progress → completed / aborted."""

    __tablename__ = "test_runs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="pending",
        comment="pending | in_progress | completed | aborted",
    )
    executed_by = db.Column(db.Integer, nullable=False)
    started_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    complete_at = db.Column("completed_at", db.DateTime(timezone=True), nullable=True)
    duration = db.Column(db.Integer, nullable=True, comment="Seconds, computed on completion")

    def to_entity(self) -> domain.TestRun:
        return domain.TestRun(
            id=self.id,
            name=self.name,
            description=self.description,
            status=self.status,
            executed_by=self.executed_by,
            started_at=as_utc(self.started_at),
            complete_at=as_utc(self.complete_at),
            duration=self.duration,
        )

    def __repr__(self):
        return f"<TestRun {self.id}: {self.name[:30]} [{self.status}]>"


class TestRunResult(db.Model):
    __tablename__ = "test_run_results"

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(
        db.Integer, db.ForeignKey("test_runs.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    test_case_id = db.Column(db.Integer, nullable=False, index=True)
    status = db.Column(
        db.String(20), nullable=False,
        comment="passed | failed | blocked | skipped",
    )
    notes = db.Column(db.Text, nullable=True)
    executed_by = db.Column(db.Integer, nullable=False)
    executed_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    duration = db.Column(db.Integer, nullable=True, comment="Seconds")

    def to_entity(self) -> domain.TestRunResult:
        return domain.TestRunResult(
            id=self.id,
            run_id=self.run_id,
            test_case_id=self.test_case_id,
            status=self.status,
            notes=self.notes,
            executed_by=self.executed_by,
            executed_at=as_utc(self.executed_at),
            duration=self.duration,
        )

    def __repr__(self):
        return f"<TestRunResult {self.id}: run#{self.run_id} case#{self.test_case_id} → {self.status}>"


class Bug(db.Model):
    __tablename__ = "bugs"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="open",
        comment="open | in_progress | fixed | closed",
    )
    severity = db.Column(
        db.String(20), nullable=False, default="medium",
        comment="critical | high | medium | low",
    )
    test_case_id = db.Column(db.Integer, nullable=True, index=True)
    test_run_result_id = db.Column(db.Integer, nullable=True)
    reported_by = db.Column(db.Integer, nullable=False)
    reported_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    assigned_to = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_entity(self) -> domain.Bug:
        return domain.Bug(
            id=self.id,
            title=self.title,
            description=self.description,
            status=self.status,
            severity=self.severity,
            test_case_id=self.test_case_id,
            test_run_result_id=self.test_run_result_id,
            reported_by=self.reported_by,
            reported_at=as_utc(self.reported_at),
            assigned_to=self.assigned_to,
            updated_at=as_utc(self.updated_at),
        )

    def __repr__(self):
        return f"<Bug {self.id}: {self.title[:30]} [{self.severity}/{self.status}]>"
