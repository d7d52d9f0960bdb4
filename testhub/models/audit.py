"""
Audit domain table.

Models:
    - ActivityLog: immutable, append-only record of user actions.
"""

from datetime import datetime, timezone

from testhub import domain
from testhub.models import as_utc, db

# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_ENTITY_TYPES = {
    "test_case", "test_run", "test_result", "bug",
    "folder", "whiteboard", "user",
}

ACTIVITY_ACTIONS = {
    # Test case lifecycle
    "create_test_case",
    "update_test_case",
    "delete_test_case",
    "revert_test_case",
    "snapshot_test_case",
    # Folder membership
    "assign_to_folder",
    "remove_from_folder",
    "create_folder",
    "update_folder",
    "delete_folder",
    # Execution
    "create_test_run",
    "complete_test_run",
    "record_test_result",
    # Bugs
    "report_bug",
    "update_bug",
    # Collaboration
    "create_whiteboard",
    "update_whiteboard",
    # Users
    "register_user",
    "login",
}


class ActivityLog(db.Model):
    """One row per action; ``details`` is stored verbatim."""

    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("idx_activity_entity", "entity_type", "entity_id"),
        db.Index("idx_activity_user", "user_id"),
        db.Index("idx_activity_ts", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False)
    action = db.Column(
        db.String(60), nullable=False,
        comment="create_test_case | record_test_result | …",
    )
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="test_case | test_run | bug | folder | …",
    )
    entity_id = db.Column(db.Integer, nullable=False)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_entity(self) -> domain.ActivityLog:
        return domain.ActivityLog(
            id=self.id,
            user_id=self.user_id,
            action=self.action,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            details=self.details,
            created_at=as_utc(self.created_at),
        )

    def __repr__(self):
        return f"<ActivityLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"
