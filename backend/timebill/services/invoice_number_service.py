# Overview: Service-layer operations for invoice numbering; atomic year-scoped counters.

"""
Invoice Number Allocator

Numbers look like ``2025-0004``: calendar year, dash, sequence zero-padded to
four digits, restarting at 1 every year.

GUARANTEES:
- No duplicates, even under concurrent generation: the counter row is bumped
  with a single ``UPDATE ... SET last_number = last_number + 1`` which the
  database serializes per row; ``invoices.number`` is also unique.
- Gaps are tolerated. Allocation happens inside the caller's transaction, so
  a rolled-back invoice also rolls back its number; a number that was
  committed is never handed out again.

Callers must not commit between allocating and writing the invoice.
"""

from __future__ import annotations

import re

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..extensions import db
from ..errors import ValidationError
from ..models import Invoice, InvoiceNumberCounter


INVOICE_NUMBER_RE = re.compile(r"^(?P<year>\d{4})-(?P<seq>\d{4,})$")


def format_invoice_number(year: int, seq: int) -> str:
    return f"{year}-{seq:04d}"


def parse_invoice_number(number: str) -> tuple[int, int]:
    """Split ``YYYY-NNNN`` into (year, seq); ValidationError otherwise."""
    match = INVOICE_NUMBER_RE.match((number or "").strip())
    if not match:
        raise ValidationError(f"Invoice number '{number}' must look like YYYY-NNNN")
    seq = int(match.group("seq"))
    if seq < 1:
        raise ValidationError("Invoice sequence must start at 1")
    return int(match.group("year")), seq


def _highest_issued(year: int) -> int:
    """Highest sequence among stored invoice numbers of ``year`` (0 if none)."""
    numbers = (
        db.session.query(Invoice.number)
        .filter(Invoice.number.like(f"{year}-%"))
        .all()
    )
    highest = 0
    for (number,) in numbers:
        match = INVOICE_NUMBER_RE.match(number)
        if match and int(match.group("year")) == year:
            highest = max(highest, int(match.group("seq")))
    return highest


def _ensure_counter_row(year: int) -> None:
    """
    Create the counter row for ``year`` if missing, without failing when a
    concurrent transaction creates it first. A new row starts at the highest
    number already stored for the year, so invoices written before the
    counter existed are never reissued.
    """
    values = {"year": year, "last_number": _highest_issued(year)}
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(InvoiceNumberCounter).values(**values).on_conflict_do_nothing(index_elements=["year"])
    elif dialect == "sqlite":
        stmt = sqlite_insert(InvoiceNumberCounter).values(**values).on_conflict_do_nothing(index_elements=["year"])
    else:
        exists = db.session.query(InvoiceNumberCounter.id).filter_by(year=year).first()
        if exists:
            return
        stmt = InvoiceNumberCounter.__table__.insert().values(**values)
    db.session.execute(stmt)


def _current_value(year: int) -> int:
    return (
        db.session.query(InvoiceNumberCounter.last_number)
        .filter_by(year=year)
        .scalar()
    )


def next_invoice_number(year: int) -> str:
    """
    Atomically allocate the next invoice number for ``year``.

    Must run inside the transaction that writes the invoice; the caller
    commits. Wrap the whole enclosing operation in run_with_retry, never just
    this call.
    """
    if not year or year < 1:
        raise ValidationError("year is required")

    stmt = (
        update(InvoiceNumberCounter)
        .where(InvoiceNumberCounter.year == year)
        .values(last_number=InvoiceNumberCounter.last_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        _ensure_counter_row(year)
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise RuntimeError(f"Invoice number counter for {year} could not be created")

    db.session.flush()
    return format_invoice_number(year, _current_value(year))


def peek_next_invoice_number(year: int) -> str:
    """Read-only preview of the next number; not a reservation."""
    current = _current_value(year)
    if current is None:
        current = _highest_issued(year)
    return format_invoice_number(year, current + 1)


def reserve_explicit_number(number: str) -> tuple[int, int]:
    """
    Account for a caller-chosen number so automatic allocation never hands it
    out again: the year's counter is raised to at least its sequence.
    """
    year, seq = parse_invoice_number(number)
    _ensure_counter_row(year)
    db.session.execute(
        update(InvoiceNumberCounter)
        .where(
            InvoiceNumberCounter.year == year,
            InvoiceNumberCounter.last_number < seq,
        )
        .values(last_number=seq)
    )
    db.session.flush()
    return year, seq


def sync_counter_from_invoices(year: int) -> int:
    """
    Raise the counter to the highest number already issued for ``year``.

    Repair tool for data created outside the allocator (imports, manual
    numbers written before reserve_explicit_number existed). Returns the
    counter value afterwards. Caller commits.
    """
    highest = _highest_issued(year)
    _ensure_counter_row(year)
    if highest:
        db.session.execute(
            update(InvoiceNumberCounter)
            .where(
                InvoiceNumberCounter.year == year,
                InvoiceNumberCounter.last_number < highest,
            )
            .values(last_number=highest)
        )
    db.session.flush()
    return _current_value(year)
