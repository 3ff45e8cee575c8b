# Overview: Service-layer operations for invoice lifecycle; encapsulates business logic and database work.

"""
Invoice Lifecycle Service

================================================================================
PURPOSE: Enforce DRAFT -> SENT -> {PAID, OVERDUE} -> PAID for invoices
================================================================================

STATE MACHINE:
    DRAFT -> SENT -> PAID
                  -> OVERDUE -> PAID

    DRAFT:   Generated or entered, not yet delivered to the client
    SENT:    Delivered, awaiting payment
    OVERDUE: Delivered, due date has passed, still unpaid
    PAID:    Settled. Terminal and IMMUTABLE.

RULES (NON-NEGOTIABLE):
1. Only the transitions in ALLOWED_TRANSITIONS succeed; everything else,
   including same-state "transitions", raises InvalidTransitionError
2. Nothing leaves PAID and nothing re-enters DRAFT
3. Once PAID no field may change (ImmutableError)
4. Totals and items are never edited after creation, in any status
5. SENT -> OVERDUE promotion is advisory: applied on read and by the
   batch command, never as a side effect of other writes
================================================================================
"""

from __future__ import annotations

from datetime import date
from typing import Literal

from flask import current_app

from ..extensions import db
from ..errors import ImmutableError, InvalidTransitionError, NotFoundError, ValidationError
from ..models import Invoice, INVOICE_STATUSES
from ..time_utils import utcnow, parse_iso_date
from .concurrency import lock_for_update, run_with_retry


VALID_STATUSES = set(INVOICE_STATUSES)
InvoiceStatus = Literal["DRAFT", "SENT", "PAID", "OVERDUE"]

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "DRAFT": frozenset({"SENT"}),
    "SENT": frozenset({"PAID", "OVERDUE"}),
    "OVERDUE": frozenset({"PAID"}),
    "PAID": frozenset(),
}

# Non-status fields that may change while the invoice is not PAID
MUTABLE_FIELDS = {"notes", "due_date", "payment_terms"}


def normalize_status(status) -> str:
    """
    Uppercase and validate a status value.

    Raises:
        ValidationError: If status is not one of INVOICE_STATUSES
    """
    value = str(status or "").strip().upper()
    if value not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(INVOICE_STATUSES)}"
        )
    return value


def can_transition(from_status: str, to_status: str) -> bool:
    """True only for pairs listed in ALLOWED_TRANSITIONS."""
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def require_transition(from_status: str, to_status: str) -> None:
    if not can_transition(from_status, to_status):
        allowed = sorted(ALLOWED_TRANSITIONS.get(from_status, ()))
        raise InvalidTransitionError(
            f"Cannot change invoice status from {from_status} to {to_status}",
            details={"from": from_status, "to": to_status, "allowed": allowed},
        )


def _apply_status(invoice: Invoice, to_status: str) -> None:
    require_transition(invoice.status, to_status)
    invoice.status = to_status
    if to_status == "SENT":
        invoice.sent_at = utcnow()
    elif to_status == "PAID":
        invoice.paid_at = utcnow()


def _locked_invoice(owner_id: int, invoice_id: int) -> Invoice:
    invoice = lock_for_update(
        db.session.query(Invoice).filter_by(id=invoice_id, owner_id=owner_id)
    ).first()
    if not invoice:
        raise NotFoundError("Invoice not found or access denied")
    return invoice


def transition_invoice(*, owner_id: int, invoice_id: int, to_status: str) -> Invoice:
    """
    Move an invoice along the lifecycle.

    Raises:
        ValidationError: unknown status value
        NotFoundError: invoice missing or owned by someone else
        InvalidTransitionError: pair not in ALLOWED_TRANSITIONS
    """
    target = normalize_status(to_status)

    def _op() -> Invoice:
        invoice = _locked_invoice(owner_id, invoice_id)
        from_status = invoice.status
        _apply_status(invoice, target)
        db.session.commit()
        current_app.logger.info(
            "Invoice %s status %s -> %s", invoice.number, from_status, target
        )
        return invoice

    return run_with_retry(_op)


def update_invoice(*, owner_id: int, invoice_id: int, changes: dict) -> Invoice:
    """
    Patch editable fields and/or status.

    A PAID invoice rejects every non-status field with ImmutableError; a
    status in the payload still goes through the transition table.
    """
    if not changes:
        raise ValidationError("No changes provided")

    def _op() -> Invoice:
        invoice = _locked_invoice(owner_id, invoice_id)

        field_keys = set(changes) - {"status"}
        if invoice.status == "PAID" and field_keys:
            raise ImmutableError(
                f"Invoice {invoice.number} is PAID and can no longer be modified",
                details={"fields": sorted(field_keys)},
            )

        unknown = field_keys - MUTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

        for key in ("notes", "payment_terms"):
            if key in changes:
                value = changes[key]
                if value is not None and not isinstance(value, str):
                    raise ValidationError(f"{key} must be a string")
                setattr(invoice, key, value.strip() if value else None)
        if "due_date" in changes:
            due = changes["due_date"]
            if isinstance(due, str):
                try:
                    due = parse_iso_date(due)
                except ValueError:
                    raise ValidationError("due_date must be an ISO-8601 date")
            if not isinstance(due, date):
                raise ValidationError("due_date must be an ISO-8601 date")
            if due < invoice.issue_date:
                raise ValidationError("due_date cannot be before issue_date")
            invoice.due_date = due

        if "status" in changes:
            _apply_status(invoice, normalize_status(changes["status"]))

        db.session.commit()
        return invoice

    return run_with_retry(_op)


def is_overdue(invoice: Invoice, today: date) -> bool:
    return invoice.status == "SENT" and invoice.due_date is not None and today > invoice.due_date


def promote_overdue(invoice: Invoice, today: date | None = None) -> bool:
    """
    On-read check: SENT and past due -> OVERDUE. Returns True if promoted.

    Advisory: a failure here is logged and the read continues with the stored
    status.
    """
    today = today or utcnow().date()
    if not is_overdue(invoice, today):
        return False

    invoice.status = "OVERDUE"
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to promote invoice %s to OVERDUE", invoice.id)
        return False
    return True


def mark_overdue_invoices(today: date | None = None) -> list[Invoice]:
    """
    Batch form of promote_overdue for a scheduler or CLI.

    Returns the invoices that were promoted.
    """
    today = today or utcnow().date()

    def _op() -> list[Invoice]:
        candidates = lock_for_update(
            db.session.query(Invoice).filter(
                Invoice.status == "SENT",
                Invoice.due_date < today,
            )
        ).order_by(Invoice.id.asc()).all()
        for invoice in candidates:
            invoice.status = "OVERDUE"
        db.session.commit()
        return candidates

    promoted = run_with_retry(_op)
    if promoted:
        current_app.logger.info("Marked %s invoice(s) OVERDUE", len(promoted))
    return promoted
