"""
User table.

Credentials and sessions live in the auth layer; this table only holds
the profile fields other entities reference by id.
"""

from testhub import domain
from testhub.models import as_utc, db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(150), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    full_name = db.Column(db.String(200), nullable=False)
    avatar = db.Column(db.Text, nullable=True)
    role = db.Column(
        db.String(20), nullable=False, default="tester",
        comment="system_owner | admin | tester | viewer",
    )
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_entity(self) -> domain.User:
        return domain.User(
            id=self.id,
            username=self.username,
            email=self.email,
            full_name=self.full_name,
            role=self.role,
            avatar=self.avatar,
            is_active=self.is_active,
            last_login=as_utc(self.last_login),
        )

    def __repr__(self):
        return f"<User {self.id}: {self.username} [{self.role}]>"
