from __future__ import annotations

from ..extensions import db
from .types import FixedPoint
from ..money import format_money
from ..time_utils import to_utc_z


class Worker(db.Model):
    """
    A person who logs time and issues invoices.

    Identity (credentials, sessions) is owned by an upstream service; this
    table only mirrors what billing needs: role and hourly rate.
    """
    __tablename__ = "workers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    role = db.Column(db.String(32), nullable=False, default="freelancer")

    # Null means the configured DEFAULT_HOURLY_RATE applies
    hourly_rate = db.Column(FixedPoint(2), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "hourly_rate": format_money(self.hourly_rate),
            "is_active": self.is_active,
        }


class Client(db.Model):
    __tablename__ = "clients"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False, index=True)
    company = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    owner = db.relationship("Worker", backref=db.backref("clients", lazy=True))

    def to_dict(self) -> dict:
        return {"id": self.id, "company": self.company, "email": self.email}


class Project(db.Model):
    __tablename__ = "projects"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    owner = db.relationship("Worker", backref=db.backref("projects", lazy=True))
    client = db.relationship("Client", backref=db.backref("projects", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "client_id": self.client_id,
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Task(db.Model):
    __tablename__ = "tasks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    project = db.relationship("Project", backref=db.backref("tasks", lazy=True))

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "project": {"id": self.project.id, "name": self.project.name},
        }
