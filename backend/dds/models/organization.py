from __future__ import annotations

from ..extensions import db
from dds.time_utils import to_utc_z


class Department(db.Model):
    """
    Organizational department (master data, referenced by id).

    location_code doubles as the department's identity in distribution
    numbers (YY/DEPT/TYPE/0001) and as the value stored in a document's
    current location.
    """
    __tablename__ = "departments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    location_code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    project = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Department id={self.id} location_code={self.location_code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location_code": self.location_code,
            "project": self.project,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Actor projection of the auth collaborator.

    Only identity and department membership are needed here; credentials,
    roles and sessions live outside this service.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    department = db.relationship("Department", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "email": self.email,
            "department_id": self.department_id,
            "is_active": self.is_active,
        }


class DistributionType(db.Model):
    """Distribution type / priority classification (e.g. NRM normal, URG urgent)."""
    __tablename__ = "distribution_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(16), nullable=False, unique=True, index=True)
    color = db.Column(db.String(16), nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=1)  # lower = more urgent
    description = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "color": self.color,
            "priority": self.priority,
            "description": self.description,
        }
