"""Whiteboard sessions persisted on behalf of the real-time channel."""

from datetime import datetime, timezone

from testhub import domain
from testhub.models import as_utc, db


class Whiteboard(db.Model):
    __tablename__ = "whiteboards"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text, nullable=False)
    content = db.Column(db.JSON, default=list, comment="Opaque payload, never interpreted")
    created_by = db.Column(db.Integer, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_entity(self) -> domain.Whiteboard:
        return domain.Whiteboard(
            id=self.id,
            name=self.name,
            content=self.content,
            created_by=self.created_by,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )

    def __repr__(self):
        return f"<Whiteboard {self.id}: {self.name[:30]}>"
