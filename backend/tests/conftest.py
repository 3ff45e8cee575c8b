"""
Pytest fixtures for timebill backend tests.

Provides test database setup, directory fixtures (workers, clients, projects,
tasks), ledger helpers, and test client.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from timebill import create_app
from timebill.extensions import db
from timebill.models import Worker, Client, Project, Task, TimeEntry, Expense


@pytest.fixture(scope='session')
def app():
    """One app per test run, backed by an in-memory SQLite schema."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_BACKOFF': 0.01,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client sharing the session app context."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table (children first) and hand the test the session."""
    with app.app_context():
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def worker_a(db_session):
    """Freelancer A, billing at 50.00/h."""
    worker = Worker(name="Ada Freelancer", email="ada@example.com", hourly_rate=Decimal("50.00"))
    db_session.add(worker)
    db_session.commit()
    return worker


@pytest.fixture(scope='function')
def worker_b(db_session):
    """Freelancer B, billing at 80.00/h."""
    worker = Worker(name="Bo Freelancer", email="bo@example.com", hourly_rate=Decimal("80.00"))
    db_session.add(worker)
    db_session.commit()
    return worker


@pytest.fixture(scope='function')
def client_a(db_session, worker_a):
    """Client owned by worker A."""
    customer = Client(owner_id=worker_a.id, company="Acme Studio", email="billing@acme.example")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def project_a(db_session, worker_a, client_a):
    """Project owned by worker A."""
    project = Project(owner_id=worker_a.id, client_id=client_a.id, name="Website Relaunch")
    db_session.add(project)
    db_session.commit()
    return project


@pytest.fixture(scope='function')
def task_a(db_session, project_a):
    """Task in project A."""
    task = Task(project_id=project_a.id, title="Design")
    db_session.add(task)
    db_session.commit()
    return task


@pytest.fixture(scope='function')
def task_a2(db_session, project_a):
    """Second task in project A."""
    task = Task(project_id=project_a.id, title="Implementation")
    db_session.add(task)
    db_session.commit()
    return task


@pytest.fixture(scope='function')
def task_b(db_session, worker_b):
    """Task in a project owned by worker B (with its own client)."""
    customer = Client(owner_id=worker_b.id, company="Beta Inc")
    db_session.add(customer)
    db_session.flush()
    project = Project(owner_id=worker_b.id, client_id=customer.id, name="Beta App")
    db_session.add(project)
    db_session.flush()
    task = Task(project_id=project.id, title="Backend")
    db_session.add(task)
    db_session.commit()
    return task


@pytest.fixture(scope='function')
def make_entry(db_session):
    """Factory: write a completed ledger entry directly (bypasses the timer)."""
    def _make(
        *,
        worker,
        task,
        start: datetime,
        minutes: float = 60,
        seconds: int | None = None,
        billable: bool = True,
        approved: bool = True,
    ) -> TimeEntry:
        duration = seconds if seconds is not None else int(minutes * 60)
        entry = TimeEntry(
            worker_id=worker.id,
            task_id=task.id,
            start_at=start,
            end_at=start + timedelta(seconds=duration),
            duration_seconds=duration,
            billable=billable,
            approved=approved,
        )
        db_session.add(entry)
        db_session.commit()
        return entry
    return _make


@pytest.fixture(scope='function')
def make_expense(db_session):
    """Factory: billable project expense."""
    def _make(*, worker, project, day, amount: str, category="travel", description="train", billable=True):
        expense = Expense(
            project_id=project.id,
            worker_id=worker.id,
            date=day,
            amount=Decimal(amount),
            category=category,
            description=description,
            billable=billable,
        )
        db_session.add(expense)
        db_session.commit()
        return expense
    return _make


def auth_headers(worker) -> dict:
    """Identity headers as forwarded by the upstream gateway."""
    return {'X-Worker-Id': str(worker.id)}
