# Overview: Service-layer operations for invoice generation; aggregation, totals and persistence.

"""
Invoice Generator

WHY: Turns approved, billable time and billable expenses for a project and
period into a DRAFT invoice whose totals can be trusted: numbered without
duplicates, written all-or-nothing, and computed in fixed-point decimal.

ROUNDING RULES:
1. Hours per task are summed from raw seconds, then divided by 3600.
   Entries are never rounded individually.
2. A time line's quantity is those hours rounded to 2 places; its amount
   is quantity x rate, rounded to 2 places (ROUND_HALF_UP).
3. subtotal = sum of rounded line amounts, rounded.
4. tax = subtotal x tax_rate, rounded; total = subtotal + tax - discount,
   rounded. Each of the three is rounded independently.

TRANSACTION: selection, number allocation, invoice and item inserts commit
together. On lock contention the whole operation is retried from the top;
no half of it is ever re-run alone.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..models import Invoice, InvoiceItem, TimeEntry, Expense
from ..money import ZERO, round_money, sum_money, hours_from_seconds, parse_decimal, RATE_PLACES
from ..time_utils import utcnow
from . import ledger_service
from .concurrency import run_with_retry
from .directory_service import require_owned_project, require_owned_client, hourly_rate_for
from .invoice_number_service import next_invoice_number, reserve_explicit_number
from .lifecycle_service import normalize_status, promote_overdue


CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


@dataclass(frozen=True)
class LineDraft:
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal
    task_id: int | None = None
    expense_id: int | None = None


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal


def configured_tax_rate() -> Decimal:
    return Decimal(current_app.config.get("INVOICE_TAX_RATE", Decimal("0.25")))


def compute_totals(amounts: Iterable[Decimal], tax_rate: Decimal, discount: Decimal = ZERO) -> InvoiceTotals:
    """Round-then-sum: see module docstring."""
    subtotal = sum_money(round_money(a) for a in amounts)
    tax = round_money(subtotal * tax_rate)
    discount = round_money(discount)
    total = round_money(subtotal + tax - discount)
    return InvoiceTotals(subtotal=subtotal, tax=tax, discount=discount, total=total)


def build_time_lines(entries: list[TimeEntry], rate: Decimal) -> list[LineDraft]:
    """
    One line per task, priced at ``rate``. The quantity is the task's summed
    hours rounded to 2 places and the amount is quantity x rate.
    """
    seconds: dict[int, int] = defaultdict(int)
    titles: dict[int, str] = {}
    for entry in entries:
        seconds[entry.task_id] += entry.duration_seconds or 0
        titles[entry.task_id] = entry.task.title

    rate = round_money(rate)
    lines = []
    for task_id in sorted(seconds):
        quantity = round_money(hours_from_seconds(seconds[task_id]))
        lines.append(LineDraft(
            description=f"work on task: {titles[task_id]}",
            quantity=quantity,
            rate=rate,
            amount=round_money(quantity * rate),
            task_id=task_id,
        ))
    return lines


def build_expense_lines(expenses: list[Expense]) -> list[LineDraft]:
    return [
        LineDraft(
            description=f"{expense.category}: {expense.description}",
            quantity=Decimal("1.00"),
            rate=round_money(expense.amount),
            amount=round_money(expense.amount),
            expense_id=expense.id,
        )
        for expense in expenses
    ]


def _items_from_lines(lines: list[LineDraft]) -> list[InvoiceItem]:
    return [
        InvoiceItem(
            position=position,
            description=line.description,
            quantity=line.quantity,
            rate=line.rate,
            amount=line.amount,
            task_id=line.task_id,
            expense_id=line.expense_id,
        )
        for position, line in enumerate(lines, start=1)
    ]


def generate_invoice(
    *,
    owner_id: int,
    project_id: int,
    start_date: date,
    end_date: date,
    due_date: date | None = None,
    notes: str | None = None,
    today: date | None = None,
) -> Invoice:
    """
    Aggregate a project's billable work for [start_date, end_date] into a
    DRAFT invoice.

    Raises:
        NotFoundError: project missing or not owned by owner_id
        ValidationError: start_date after end_date, due_date before issue date
        InvalidStateError: nothing to invoice (no row is written)
    """
    if start_date is None or end_date is None:
        raise ValidationError("start_date and end_date are required")
    if start_date > end_date:
        raise ValidationError("start_date must not be after end_date")

    issue_date = today or utcnow().date()
    if due_date is None:
        due_date = issue_date + timedelta(days=current_app.config.get("INVOICE_DUE_DAYS", 30))
    if due_date < issue_date:
        raise ValidationError("due_date cannot be before the issue date")

    tax_rate = configured_tax_rate()

    def _op() -> Invoice:
        project = require_owned_project(project_id, owner_id)

        entries = ledger_service.invoiceable_entries(project.id, owner_id, start_date, end_date)
        expenses = ledger_service.invoiceable_expenses(project.id, owner_id, start_date, end_date)
        if not entries and not expenses:
            raise InvalidStateError(
                "Nothing to invoice: no billable approved time entries or billable expenses in the period",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

        lines = build_time_lines(entries, hourly_rate_for(project.owner)) + build_expense_lines(expenses)
        totals = compute_totals([line.amount for line in lines], tax_rate)

        invoice = Invoice(
            number=next_invoice_number(issue_date.year),
            owner_id=owner_id,
            client_id=project.client_id,
            project_id=project.id,
            issue_date=issue_date,
            due_date=due_date,
            status="DRAFT",
            subtotal=totals.subtotal,
            tax_rate=tax_rate,
            tax=totals.tax,
            discount=totals.discount,
            total=totals.total,
            currency=current_app.config.get("INVOICE_CURRENCY", "EUR"),
            notes=notes,
            period_start=start_date,
            period_end=end_date,
        )
        invoice.items = _items_from_lines(lines)
        db.session.add(invoice)
        db.session.flush()
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info(
        "Generated invoice %s for project %s: %s line(s), total %s",
        invoice.number, project_id, len(invoice.items), invoice.total,
    )
    return invoice


def _parse_manual_items(items) -> list[LineDraft]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    lines = []
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        description = str(raw.get("description") or "").strip()
        if not description:
            raise ValidationError(f"items[{index}].description is required")
        quantity = parse_decimal(raw.get("quantity"), f"items[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be greater than 0")
        rate = parse_decimal(raw.get("rate"), f"items[{index}].rate", minimum=ZERO)
        lines.append(LineDraft(
            description=description,
            quantity=quantity,
            rate=rate,
            amount=round_money(quantity * rate),
        ))
    return lines


def _check_override(name: str, supplied, expected: Decimal) -> None:
    if supplied is None:
        return
    value = parse_decimal(supplied, name, minimum=ZERO)
    if round_money(value) != expected:
        raise ValidationError(
            f"{name} does not match the computed value",
            details={"field": name, "supplied": str(value), "expected": str(expected)},
        )


def create_manual_invoice(
    *,
    owner_id: int,
    client_id: int,
    items: list[dict],
    due_date: date,
    project_id: int | None = None,
    number: str | None = None,
    status: str | None = None,
    tax_rate=None,
    discount=None,
    subtotal=None,
    tax=None,
    total=None,
    currency: str | None = None,
    notes: str | None = None,
    payment_terms: str | None = None,
    issue_date: date | None = None,
) -> Invoice:
    """
    Create an invoice from caller-supplied lines.

    Item amounts are always quantity x rate (rounded). Totals follow the same
    round-then-sum policy as generate_invoice; a caller-supplied subtotal,
    tax or total is accepted only if it equals the computed value, so the
    totals invariant holds for every invoice regardless of how it was made.
    tax_rate is a fraction (0.25 == 25%).
    """
    lines = _parse_manual_items(items)

    rate = configured_tax_rate() if tax_rate is None else parse_decimal(
        tax_rate, "tax_rate", places=RATE_PLACES, minimum=ZERO
    )
    if rate > 1:
        raise ValidationError("tax_rate must be a fraction between 0 and 1")
    discount_value = ZERO if discount is None else parse_decimal(discount, "discount", minimum=ZERO)

    totals = compute_totals([line.amount for line in lines], rate, discount_value)
    _check_override("subtotal", subtotal, totals.subtotal)
    _check_override("tax", tax, totals.tax)
    _check_override("total", total, totals.total)
    if totals.total < 0:
        raise ValidationError("discount cannot exceed subtotal plus tax")

    initial_status = normalize_status(status) if status else "DRAFT"
    currency_code = (currency or current_app.config.get("INVOICE_CURRENCY", "EUR")).strip().upper()
    if not CURRENCY_RE.match(currency_code):
        raise ValidationError("currency must be a 3-letter code")

    issued = issue_date or utcnow().date()
    if due_date is None:
        raise ValidationError("due_date is required")
    if due_date < issued:
        raise ValidationError("due_date cannot be before issue_date")

    def _op() -> Invoice:
        require_owned_client(client_id, owner_id)
        if project_id is not None:
            project = require_owned_project(project_id, owner_id)
            if project.client_id != client_id:
                raise NotFoundError("Project not found for this client")

        if number:
            invoice_number = number.strip()
            if db.session.query(Invoice.id).filter_by(number=invoice_number).first():
                raise ConflictError(f"Invoice number {invoice_number} already exists")
            reserve_explicit_number(invoice_number)
        else:
            invoice_number = next_invoice_number(issued.year)

        now = utcnow()
        invoice = Invoice(
            number=invoice_number,
            owner_id=owner_id,
            client_id=client_id,
            project_id=project_id,
            issue_date=issued,
            due_date=due_date,
            status=initial_status,
            subtotal=totals.subtotal,
            tax_rate=rate,
            tax=totals.tax,
            discount=totals.discount,
            total=totals.total,
            currency=currency_code,
            notes=notes,
            payment_terms=payment_terms,
            sent_at=now if initial_status in ("SENT", "OVERDUE", "PAID") else None,
            paid_at=now if initial_status == "PAID" else None,
        )
        invoice.items = _items_from_lines(lines)
        db.session.add(invoice)
        try:
            db.session.flush()
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Invoice number {invoice_number} already exists")
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info("Created manual invoice %s (%s)", invoice.number, invoice.status)
    return invoice


def get_invoice(*, owner_id: int, invoice_id: int, today: date | None = None) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(id=invoice_id, owner_id=owner_id).first()
    if not invoice:
        raise NotFoundError("Invoice not found or access denied")
    promote_overdue(invoice, today)
    return invoice


def list_invoices(
    *,
    owner_id: int,
    status: str | None = None,
    client_id: int | None = None,
    project_id: int | None = None,
    limit: int = 200,
    today: date | None = None,
) -> list[Invoice]:
    """
    Caller's invoices, newest first, at most ``limit`` of them. SENT invoices
    past due are promoted on read, so an OVERDUE filter also considers stored
    SENT rows and the limit counts rows after promotion.
    """
    wanted = normalize_status(status) if status else None

    q = db.session.query(Invoice).filter(Invoice.owner_id == owner_id)
    if client_id is not None:
        q = q.filter(Invoice.client_id == client_id)
    if project_id is not None:
        q = q.filter(Invoice.project_id == project_id)
    if wanted == "OVERDUE":
        q = q.filter(Invoice.status.in_(("SENT", "OVERDUE")))
    elif wanted:
        q = q.filter(Invoice.status == wanted)

    q = q.order_by(Invoice.issue_date.desc(), Invoice.id.desc())
    if not wanted:
        invoices = q.limit(limit).all()
        for invoice in invoices:
            promote_overdue(invoice, today)
        return invoices

    # Promotion can move rows between SENT and OVERDUE, so filter before limiting
    matching = []
    for invoice in q.all():
        promote_overdue(invoice, today)
        if invoice.status == wanted:
            matching.append(invoice)
    return matching[:limit]
