from __future__ import annotations

from ..extensions import db
from dds.time_utils import to_utc_z


class Notification(db.Model):
    """
    Persisted notification for a user.

    This is the sink distribution events land in; pushing them to a browser
    (websocket, email) is the job of a separate delivery service.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "read_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    type = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=True)
    data = db.Column(db.JSON, nullable=True)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data or {},
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }
