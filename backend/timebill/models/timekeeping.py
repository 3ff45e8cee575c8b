from __future__ import annotations

from ..extensions import db
from .types import FixedPoint
from ..money import format_money
from ..time_utils import to_utc_z, to_iso_date


class TimeEntry(db.Model):
    """
    One recorded span of work, running or completed.

    LIFECYCLE:
    - RUNNING: end_at is NULL, duration_seconds is 0
    - COMPLETED: end_at set, duration_seconds authoritative (> 0)
    - APPROVED: reviewed and locked; only approved entries are invoiced

    INVARIANT: at most one running entry per worker. Enforced by the partial
    unique index below, not by application sequencing, so two concurrent
    starts cannot both commit.

    Entries are soft-deleted (deleted_at) and never removed, so an entry that
    funded an invoice line stays available for audit.
    """
    __tablename__ = "time_entries"
    __table_args__ = (
        db.Index(
            "uq_time_entries_worker_running",
            "worker_id",
            unique=True,
            sqlite_where=db.text("end_at IS NULL"),
            postgresql_where=db.text("end_at IS NULL"),
        ),
        db.Index("ix_time_entries_task_start", "task_id", "start_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False, index=True)
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id"), nullable=False, index=True)

    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    end_at = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_seconds = db.Column(db.Integer, nullable=False, default=0)

    note = db.Column(db.Text, nullable=True)
    billable = db.Column(db.Boolean, nullable=False, default=True)

    approved = db.Column(db.Boolean, nullable=False, default=False, index=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    worker = db.relationship("Worker", foreign_keys=[worker_id], backref=db.backref("time_entries", lazy=True))
    task = db.relationship("Task", backref=db.backref("time_entries", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_running(self) -> bool:
        return self.end_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "worker_id": self.worker_id,
            "task_id": self.task_id,
            "start_at": to_utc_z(self.start_at),
            "end_at": to_utc_z(self.end_at),
            "duration_seconds": self.duration_seconds,
            "is_running": self.is_running,
            "note": self.note,
            "billable": self.billable,
            "approved": self.approved,
            "approved_at": to_utc_z(self.approved_at),
            "deleted": self.deleted_at is not None,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class Expense(db.Model):
    """
    Out-of-pocket cost recorded against a project.

    Read-only input to invoice generation; expense CRUD lives elsewhere.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_project_date", "project_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    amount = db.Column(FixedPoint(2), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=False, default="")
    billable = db.Column(db.Boolean, nullable=False, default=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    project = db.relationship("Project", backref=db.backref("expenses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "worker_id": self.worker_id,
            "date": to_iso_date(self.date),
            "amount": format_money(self.amount),
            "category": self.category,
            "description": self.description,
            "billable": self.billable,
        }
