from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    document = db.relationship("UserDocument", backref="user", uselist=False, cascade="all, delete-orphan")

    def set_password(self, plaintext: str):
        self.password_hash = generate_password_hash(plaintext)

    def check_password(self, plaintext: str) -> bool:
        return check_password_hash(self.password_hash, plaintext)

    def __repr__(self):
        return f"<User {self.username}>"


class UserDocument(db.Model):
    """One JSON document per user: settings, planner mode, progress and custom plan."""
    __tablename__ = "user_document"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), unique=True, nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<UserDocument user={self.user_id} fields={sorted(self.data or {})}>"


class LocalEntry(db.Model):
    """Key/value pairs for a browser that is not signed in; values are JSON text."""
    __tablename__ = "local_entry"
    __table_args__ = (db.UniqueConstraint("client_id", "key", name="uq_local_entry_client_key"),)

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.String(64), nullable=False, index=True)
    key = db.Column(db.String(64), nullable=False)
    value = db.Column(db.Text, nullable=False)

    def __repr__(self):
        return f"<LocalEntry {self.client_id[:8]} {self.key}>"
