# Overview: Service-layer operations for timers and time entries; encapsulates business logic.

"""
Time Tracker

WHY: Workers start/stop a timer against a task; the stopped timer becomes a
ledger entry that can later be approved and invoiced. Manual entries cover
work that was not timed live.

STATE MACHINE (per entry):
    RUNNING (end_at NULL) -> COMPLETED (end_at set) -> APPROVED (locked)

RULES:
1. At most one RUNNING entry per worker. The partial unique index on
   time_entries(worker_id) WHERE end_at IS NULL closes the check-then-insert
   race; the pre-check only gives a friendlier error on the common path.
2. duration_seconds = round(end - start), always > 0 once completed.
   A stop that would produce <= 0 (clock moved backward) leaves the entry
   RUNNING.
3. RUNNING and APPROVED entries cannot be edited or deleted.
4. Deletes are soft (deleted_at), never physical.
"""

from __future__ import annotations

from datetime import date, datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..models import TimeEntry, Task, Project
from ..time_utils import utcnow, elapsed_seconds, day_bounds
from . import ledger_service
from .concurrency import lock_for_update, run_with_retry
from .directory_service import require_owned_task


EDITABLE_FIELDS = {"start_at", "end_at", "note", "billable", "task_id"}


def _require_positive_duration(start_at: datetime, end_at: datetime) -> int:
    if end_at <= start_at:
        raise InvalidStateError("End time must be after start time")
    duration = elapsed_seconds(start_at, end_at)
    if duration <= 0:
        raise InvalidStateError("Duration must be greater than 0")
    return duration


def _require_mutable(entry: TimeEntry, action: str) -> None:
    if entry.is_running:
        raise InvalidStateError(f"Cannot {action} a running timer. Stop the timer first.")
    if entry.approved:
        raise InvalidStateError(f"Cannot {action} an approved time entry")


def start_timer(*, worker_id: int, task_id: int, note: str | None = None) -> TimeEntry:
    """
    Start a timer for the worker on a task they own.

    Raises:
        ConflictError: worker already has a running timer
        NotFoundError: task missing or not owned by the worker
    """
    def _op() -> TimeEntry:
        if ledger_service.get_running_entry(worker_id):
            raise ConflictError("You already have an active timer running")

        task = require_owned_task(task_id, worker_id)

        entry = TimeEntry(
            worker_id=worker_id,
            task_id=task.id,
            start_at=utcnow(),
            end_at=None,
            duration_seconds=0,
            note=note or "",
            billable=True,
            approved=False,
        )
        try:
            ledger_service.append_entry(entry)
            db.session.commit()
        except IntegrityError:
            # Lost the race against a concurrent start for the same worker
            db.session.rollback()
            raise ConflictError("You already have an active timer running")
        return entry

    entry = run_with_retry(_op)
    current_app.logger.info("Timer %s started for worker %s on task %s", entry.id, worker_id, task_id)
    return entry


def stop_timer(*, worker_id: int) -> TimeEntry:
    """
    Stop the worker's running timer.

    Raises:
        NotFoundError: no running timer
        InvalidStateError: computed duration <= 0; the timer stays running
    """
    def _op() -> TimeEntry:
        entry = lock_for_update(ledger_service.running_entry_query(worker_id)).first()
        if not entry:
            raise NotFoundError("No active timer found")

        end_at = utcnow()
        duration = elapsed_seconds(entry.start_at, end_at)
        if duration <= 0:
            raise InvalidStateError(
                "Timer duration would not be positive; the timer is still running",
                details={"entry_id": entry.id, "duration_seconds": duration},
            )

        entry.end_at = end_at
        entry.duration_seconds = duration
        db.session.commit()
        return entry

    entry = run_with_retry(_op)
    current_app.logger.info(
        "Timer %s stopped for worker %s after %ss", entry.id, worker_id, entry.duration_seconds
    )
    return entry


def get_current_timer(worker_id: int) -> dict | None:
    """
    Running entry plus derived elapsed_seconds (display only, never persisted).
    """
    entry = ledger_service.get_running_entry(worker_id)
    if not entry:
        return None

    data = entry.to_dict()
    data["elapsed_seconds"] = max(elapsed_seconds(entry.start_at, utcnow()), 0)
    data["task"] = entry.task.to_summary()
    return data


def create_manual_entry(
    *,
    worker_id: int,
    task_id: int,
    start_at: datetime,
    end_at: datetime,
    note: str | None = None,
    billable: bool = True,
) -> TimeEntry:
    """
    Record completed work directly. Bypasses the running-timer check because
    the entry is never running.
    """
    if start_at is None or end_at is None:
        raise ValidationError("start_at and end_at are required")

    task = require_owned_task(task_id, worker_id)
    duration = _require_positive_duration(start_at, end_at)

    def _op() -> TimeEntry:
        entry = TimeEntry(
            worker_id=worker_id,
            task_id=task.id,
            start_at=start_at,
            end_at=end_at,
            duration_seconds=duration,
            note=note or "",
            billable=billable,
            approved=False,
        )
        ledger_service.append_entry(entry)
        db.session.commit()
        return entry

    return run_with_retry(_op)


def get_entry(*, worker_id: int, entry_id: int) -> TimeEntry:
    entry = ledger_service.get_entry(entry_id, worker_id=worker_id)
    if not entry:
        raise NotFoundError("Time entry not found")
    return entry


def list_entries(
    *,
    worker_id: int,
    task_id: int | None = None,
    project_id: int | None = None,
    billable: bool | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 500,
) -> list[TimeEntry]:
    start_from = day_bounds(date_from, date_from)[0] if date_from else None
    start_to = day_bounds(date_to, date_to)[1] if date_to else None
    return ledger_service.list_entries(
        worker_id=worker_id,
        task_id=task_id,
        project_id=project_id,
        billable=billable,
        start_from=start_from,
        start_to=start_to,
        limit=limit,
    )


def update_entry(*, worker_id: int, entry_id: int, changes: dict) -> TimeEntry:
    """
    Edit a completed, unapproved entry. Duration is recomputed whenever a
    timestamp changes and must stay positive.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    cleared = sorted(k for k in ("task_id", "start_at", "end_at") if k in changes and changes[k] is None)
    if cleared:
        raise ValidationError(f"{', '.join(cleared)} cannot be cleared on a completed entry")

    def _op() -> TimeEntry:
        entry = lock_for_update(
            db.session.query(TimeEntry).filter(
                TimeEntry.id == entry_id,
                TimeEntry.worker_id == worker_id,
                TimeEntry.deleted_at.is_(None),
            )
        ).first()
        if not entry:
            raise NotFoundError("Time entry not found")
        _require_mutable(entry, "update")

        if "task_id" in changes and changes["task_id"] != entry.task_id:
            entry.task_id = require_owned_task(changes["task_id"], worker_id).id

        if "start_at" in changes or "end_at" in changes:
            start_at = changes.get("start_at", entry.start_at)
            end_at = changes.get("end_at", entry.end_at)
            entry.duration_seconds = _require_positive_duration(start_at, end_at)
            entry.start_at = start_at
            entry.end_at = end_at

        if "note" in changes:
            entry.note = changes["note"] or ""
        if "billable" in changes:
            entry.billable = bool(changes["billable"])

        db.session.commit()
        return entry

    return run_with_retry(_op)


def delete_entry(*, worker_id: int, entry_id: int) -> TimeEntry:
    """Soft-delete a completed, unapproved entry."""
    def _op() -> TimeEntry:
        entry = lock_for_update(
            db.session.query(TimeEntry).filter(
                TimeEntry.id == entry_id,
                TimeEntry.worker_id == worker_id,
                TimeEntry.deleted_at.is_(None),
            )
        ).first()
        if not entry:
            raise NotFoundError("Time entry not found")
        _require_mutable(entry, "delete")

        entry.deleted_at = utcnow()
        db.session.commit()
        return entry

    return run_with_retry(_op)


def approve_entries(*, approver_id: int, entry_ids: list[int]) -> list[TimeEntry]:
    """
    Approve completed entries on projects the approver owns. All-or-nothing:
    one bad id rejects the whole batch. Already approved entries are left as-is.
    """
    if not entry_ids:
        raise ValidationError("entry_ids must not be empty")
    unique_ids = sorted(set(entry_ids))

    def _op() -> list[TimeEntry]:
        entries = lock_for_update(
            db.session.query(TimeEntry)
            .join(Task, TimeEntry.task_id == Task.id)
            .join(Project, Task.project_id == Project.id)
            .filter(
                TimeEntry.id.in_(unique_ids),
                TimeEntry.deleted_at.is_(None),
                Project.owner_id == approver_id,
            )
        ).all()

        found = {e.id for e in entries}
        missing = [i for i in unique_ids if i not in found]
        if missing:
            raise NotFoundError("Time entry not found", details={"entry_ids": missing})

        running = [e.id for e in entries if e.is_running]
        if running:
            raise InvalidStateError(
                "Cannot approve a running timer. Stop the timer first.",
                details={"entry_ids": running},
            )

        now = utcnow()
        for entry in entries:
            if entry.approved:
                continue
            entry.approved = True
            entry.approved_at = now
            entry.approved_by_worker_id = approver_id

        db.session.commit()
        return sorted(entries, key=lambda e: e.id)

    return run_with_retry(_op)
