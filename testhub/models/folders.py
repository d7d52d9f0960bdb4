"""
Folder tables.

Models:
  - Folder: named grouping with an independent lifecycle
  - TestCaseFolder: test case ↔ folder membership, unique per pair
"""

from datetime import datetime, timezone

from testhub import domain
from testhub.models import as_utc, db


class Folder(db.Model):
    __tablename__ = "folders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_entity(self) -> domain.Folder:
        return domain.Folder(
            id=self.id,
            name=self.name,
            description=self.description,
            created_by=self.created_by,
            created_at=as_utc(self.created_at),
        )

    def __repr__(self):
        return f"<Folder {self.id}: {self.name}>"


class TestCaseFolder(db.Model):
    __tablename__ = "test_case_folders"
    __table_args__ = (
        db.UniqueConstraint("test_case_id", "folder_id", name="test_case_folder_idx"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    folder_id = db.Column(
        db.Integer, db.ForeignKey("folders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    def to_entity(self) -> domain.TestCaseFolder:
        return domain.TestCaseFolder(
            id=self.id,
            test_case_id=self.test_case_id,
            folder_id=self.folder_id,
        )

    def __repr__(self):
        return f"<TestCaseFolder case#{self.test_case_id} folder#{self.folder_id}>"
