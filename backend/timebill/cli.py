# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/timebill/cli.py
# Command reference. Run inside backend/ with FLASK_APP=wsgi.py exported
# (and the project installed), as `flask <group> <command> [options]`.
#
# system:
# - flask system init-db
#   Create any missing tables (idempotent). Use `flask db upgrade` in production.
# - flask system reset-db --yes
#   Local databases only. Drops every table and creates the schema again.
#
# directory:
# - flask directory seed-demo
#   Create a demo worker, client, project and two tasks.
#
# invoices:
# - flask invoices mark-overdue [--today 2025-05-01]
#   Promote SENT invoices past their due date to OVERDUE.
# - flask invoices sync-counter --year 2025
#   Raise the year's number counter to the highest number already issued.
#
# timers:
# - flask timers list-running
#   List every running timer with its elapsed time.

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .models import Worker, Client, Project, Task
from .services import ledger_service, lifecycle_service
from .services.invoice_number_service import sync_counter_from_invoices, peek_next_invoice_number
from .time_utils import utcnow, elapsed_seconds, parse_iso_date, to_utc_z


@click.group('system')
def system_group():
    """Schema creation and local resets."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Do not ask before dropping tables')
@with_appcontext
def reset_db(yes):
    """Drop every table, then create the schema from the models. Data is lost."""
    if not yes:
        click.confirm("WARN Every invoice, entry and worker will be erased. Continue?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo("PASS Schema recreated (empty). Try `flask directory seed-demo` next.")


@click.group('directory')
def directory_group():
    """Workers, clients, projects and tasks."""


@directory_group.command('seed-demo')
@click.option('--email', default='demo@timebill.local', help='Demo worker email')
@click.option('--rate', default='50.00', help='Demo worker hourly rate')
@with_appcontext
def seed_demo(email, rate):
    """
    Create a demo worker with one client, one project and two tasks.

    Idempotent on the worker email: an existing worker is reused.
    """
    worker = db.session.query(Worker).filter_by(email=email).first()
    if worker:
        click.echo(f"PASS Using existing worker: {worker.name} (ID: {worker.id})")
    else:
        worker = Worker(name="Demo Freelancer", email=email, hourly_rate=Decimal(rate))
        db.session.add(worker)
        db.session.flush()
        click.echo(f"PASS Created worker: {worker.name} (ID: {worker.id})")

    client = db.session.query(Client).filter_by(owner_id=worker.id).first()
    if not client:
        client = Client(owner_id=worker.id, company="Acme Studio", email="billing@acme.example")
        db.session.add(client)
        db.session.flush()
    click.echo(f"PASS Client: {client.company} (ID: {client.id})")

    project = db.session.query(Project).filter_by(owner_id=worker.id, client_id=client.id).first()
    if not project:
        project = Project(owner_id=worker.id, client_id=client.id, name="Website Relaunch")
        db.session.add(project)
        db.session.flush()
        for title in ("Design", "Implementation"):
            db.session.add(Task(project_id=project.id, title=title))
    click.echo(f"PASS Project: {project.name} (ID: {project.id})")

    db.session.commit()
    click.echo(f"\nUse header X-Worker-Id: {worker.id}")


@click.group('invoices')
def invoices_group():
    """Invoice maintenance commands."""


@invoices_group.command('mark-overdue')
@click.option('--today', default=None, help='Reference date (YYYY-MM-DD), defaults to today UTC')
@with_appcontext
def mark_overdue(today):
    """
    Promote SENT invoices whose due date has passed to OVERDUE.

    Intended for a daily scheduler; reads also promote on their own.
    """
    try:
        reference = parse_iso_date(today) if today else None
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--today")

    promoted = lifecycle_service.mark_overdue_invoices(reference)
    for invoice in promoted:
        click.echo(f"  {invoice.number}  due {invoice.due_date.isoformat()}  total {invoice.total}")
    click.echo(f"PASS {len(promoted)} invoice(s) marked OVERDUE")


@invoices_group.command('sync-counter')
@click.option('--year', type=int, required=True, help='Calendar year to repair')
@with_appcontext
def sync_counter(year):
    """Raise the number counter for YEAR to the highest invoice already issued."""
    value = sync_counter_from_invoices(year)
    db.session.commit()
    click.echo(f"PASS Counter for {year} is at {value}; next number {peek_next_invoice_number(year)}")


@click.group('timers')
def timers_group():
    """Time tracking inspection commands."""


@timers_group.command('list-running')
@with_appcontext
def list_running():
    """List every running timer, oldest first."""
    entries = ledger_service.list_running_entries()
    if not entries:
        click.echo("No running timers.")
        return

    now = utcnow()
    click.echo(f"\n{'ID':<6} {'Worker':<24} {'Task':<30} {'Started':<22} {'Elapsed':>10}")
    click.echo("-" * 96)
    for entry in entries:
        elapsed = max(elapsed_seconds(entry.start_at, now), 0)
        hours, rest = divmod(elapsed, 3600)
        click.echo(
            f"{entry.id:<6} {entry.worker.name[:24]:<24} {entry.task.title[:30]:<30} "
            f"{to_utc_z(entry.start_at):<22} {hours:>4}h{rest // 60:02d}m"
        )
    click.echo(f"\nTotal: {len(entries)} running timer(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(directory_group)
    app.cli.add_command(invoices_group)
    app.cli.add_command(timers_group)
