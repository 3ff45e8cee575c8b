# Overview: Read-only lookups of workers, clients, projects and tasks.

"""
Directory lookups

Project/client/task CRUD and authorization belong to another service. Billing
only needs ownership-checked lookups and the worker's hourly rate, so every
function here answers "does this exist and does the caller own it". A miss
and a foreign owner look the same to the caller (NotFoundError), which keeps
other tenants' ids from leaking.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError
from ..models import Worker, Client, Project, Task


def get_active_worker(worker_id: int) -> Worker | None:
    return db.session.query(Worker).filter_by(id=worker_id, is_active=True).first()


def require_owned_task(task_id: int, owner_id: int) -> Task:
    task = (
        db.session.query(Task)
        .join(Project, Task.project_id == Project.id)
        .filter(
            Task.id == task_id,
            Task.deleted_at.is_(None),
            Project.owner_id == owner_id,
            Project.deleted_at.is_(None),
        )
        .first()
    )
    if not task:
        raise NotFoundError("Task not found or access denied")
    return task


def require_owned_project(project_id: int, owner_id: int) -> Project:
    project = db.session.query(Project).filter(
        Project.id == project_id,
        Project.owner_id == owner_id,
        Project.deleted_at.is_(None),
    ).first()
    if not project:
        raise NotFoundError("Project not found or access denied")
    return project


def require_owned_client(client_id: int, owner_id: int) -> Client:
    client = db.session.query(Client).filter(
        Client.id == client_id,
        Client.owner_id == owner_id,
        Client.deleted_at.is_(None),
    ).first()
    if not client:
        raise NotFoundError("Client not found or access denied")
    return client


def hourly_rate_for(worker: Worker | None) -> Decimal:
    """Worker's rate, or DEFAULT_HOURLY_RATE when unset."""
    if worker is not None and worker.hourly_rate is not None:
        return worker.hourly_rate
    return Decimal(current_app.config.get("DEFAULT_HOURLY_RATE", Decimal("50.00")))
