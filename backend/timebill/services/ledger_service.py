# Overview: Service-layer storage and filtering for the time-entry ledger.

from __future__ import annotations

from datetime import date, datetime

from ..extensions import db
from ..models import TimeEntry, Task, Expense
from ..time_utils import day_bounds
"""
Time Ledger Invariants (authoritative)

- Rows are appended by timer_service (timers and manual entries).
- No business rules here: storage and filtering only.
- Soft delete only: deleted_at is set, rows are never removed.
- Range filters on start_at are inclusive at both ends.
"""


def append_entry(entry: TimeEntry) -> TimeEntry:
    """Stage a new entry and assign its id without committing."""
    db.session.add(entry)
    db.session.flush()
    return entry


def running_entry_query(worker_id: int):
    return db.session.query(TimeEntry).filter(
        TimeEntry.worker_id == worker_id,
        TimeEntry.end_at.is_(None),
        TimeEntry.deleted_at.is_(None),
    )


def get_running_entry(worker_id: int) -> TimeEntry | None:
    return running_entry_query(worker_id).first()


def list_running_entries() -> list[TimeEntry]:
    """Every worker's running entry, oldest first."""
    return (
        db.session.query(TimeEntry)
        .filter(TimeEntry.end_at.is_(None), TimeEntry.deleted_at.is_(None))
        .order_by(TimeEntry.start_at.asc())
        .all()
    )


def get_entry(entry_id: int, *, worker_id: int | None = None) -> TimeEntry | None:
    """Fetch a live (not soft-deleted) entry, optionally scoped to a worker."""
    q = db.session.query(TimeEntry).filter(
        TimeEntry.id == entry_id,
        TimeEntry.deleted_at.is_(None),
    )
    if worker_id is not None:
        q = q.filter(TimeEntry.worker_id == worker_id)
    return q.first()


def list_entries(
    *,
    worker_id: int | None = None,
    task_id: int | None = None,
    project_id: int | None = None,
    billable: bool | None = None,
    approved: bool | None = None,
    completed_only: bool = False,
    start_from: datetime | None = None,
    start_to: datetime | None = None,
    include_deleted: bool = False,
    limit: int | None = 500,
) -> list[TimeEntry]:
    """
    Filter ledger rows.

    USAGE EXAMPLES:
    - Worker's timesheet: list_entries(worker_id=1, start_from=..., start_to=...)
    - Invoice selection: list_entries(worker_id=1, project_id=7, billable=True, approved=True,
      completed_only=True, start_from=..., start_to=..., limit=None)
    """
    q = db.session.query(TimeEntry)

    if not include_deleted:
        q = q.filter(TimeEntry.deleted_at.is_(None))
    if worker_id is not None:
        q = q.filter(TimeEntry.worker_id == worker_id)
    if task_id is not None:
        q = q.filter(TimeEntry.task_id == task_id)
    if project_id is not None:
        q = q.join(Task, TimeEntry.task_id == Task.id).filter(
            Task.project_id == project_id,
            Task.deleted_at.is_(None),
        )
    if billable is not None:
        q = q.filter(TimeEntry.billable == billable)
    if approved is not None:
        q = q.filter(TimeEntry.approved == approved)
    if completed_only:
        q = q.filter(TimeEntry.end_at.isnot(None))
    if start_from is not None:
        q = q.filter(TimeEntry.start_at >= start_from)
    if start_to is not None:
        q = q.filter(TimeEntry.start_at <= start_to)

    q = q.order_by(TimeEntry.start_at.asc(), TimeEntry.id.asc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def invoiceable_entries(project_id: int, worker_id: int, start_date: date, end_date: date) -> list[TimeEntry]:
    """Worker's billable, approved, completed, live entries on the project within the window."""
    start_from, start_to = day_bounds(start_date, end_date)
    return list_entries(
        worker_id=worker_id,
        project_id=project_id,
        billable=True,
        approved=True,
        completed_only=True,
        start_from=start_from,
        start_to=start_to,
        limit=None,
    )


def invoiceable_expenses(project_id: int, worker_id: int, start_date: date, end_date: date) -> list[Expense]:
    return (
        db.session.query(Expense)
        .filter(
            Expense.project_id == project_id,
            Expense.worker_id == worker_id,
            Expense.billable.is_(True),
            Expense.deleted_at.is_(None),
            Expense.date >= start_date,
            Expense.date <= end_date,
        )
        .order_by(Expense.date.asc(), Expense.id.asc())
        .all()
    )
