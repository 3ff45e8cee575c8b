from __future__ import annotations

from ..extensions import db
from .types import FixedPoint
from ..money import format_money
from ..time_utils import to_utc_z, to_iso_date


INVOICE_STATUSES = ("DRAFT", "SENT", "PAID", "OVERDUE")


class Invoice(db.Model):
    """
    Financial document aggregated from approved time and billable expenses.

    LIFECYCLE: DRAFT -> SENT -> {PAID, OVERDUE}, OVERDUE -> PAID.
    PAID is terminal and immutable (see lifecycle_service).

    Totals are persisted, never recomputed on read:
    total == subtotal + tax - discount, subtotal == sum(items.amount).
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("number", name="uq_invoices_number"),
        db.Index("ix_invoices_owner_status", "owner_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, YYYY-NNNN
    number = db.Column(db.String(16), nullable=False)

    owner_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    subtotal = db.Column(FixedPoint(2), nullable=False)
    tax_rate = db.Column(FixedPoint(4), nullable=False)
    tax = db.Column(FixedPoint(2), nullable=False)
    discount = db.Column(FixedPoint(2), nullable=False, default=0)
    total = db.Column(FixedPoint(2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="EUR")

    notes = db.Column(db.Text, nullable=True)
    payment_terms = db.Column(db.String(255), nullable=True)

    # Period the automatic path aggregated (null for manual invoices)
    period_start = db.Column(db.Date, nullable=True)
    period_end = db.Column(db.Date, nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("invoices", lazy=True))
    project = db.relationship("Project", backref=db.backref("invoices", lazy=True))
    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        order_by="InvoiceItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "number": self.number,
            "owner_id": self.owner_id,
            "client_id": self.client_id,
            "project_id": self.project_id,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "subtotal": format_money(self.subtotal),
            "tax_rate": str(self.tax_rate),
            "tax": format_money(self.tax),
            "discount": format_money(self.discount),
            "total": format_money(self.total),
            "currency": self.currency,
            "notes": self.notes,
            "payment_terms": self.payment_terms,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "sent_at": to_utc_z(self.sent_at),
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    """
    Invoice line. amount is persisted at creation (quantity x rate, rounded)
    so historical invoices stay stable when rates change later.
    """
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.Index("ix_invoice_items_invoice_position", "invoice_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    description = db.Column(db.String(512), nullable=False)
    quantity = db.Column(FixedPoint(2), nullable=False)
    rate = db.Column(FixedPoint(2), nullable=False)
    amount = db.Column(FixedPoint(2), nullable=False)

    # Provenance of generated lines
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id"), nullable=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=True)

    invoice = db.relationship("Invoice", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "position": self.position,
            "description": self.description,
            "quantity": format_money(self.quantity),
            "rate": format_money(self.rate),
            "amount": format_money(self.amount),
            "task_id": self.task_id,
            "expense_id": self.expense_id,
        }


class InvoiceNumberCounter(db.Model):
    """
    Year -> last issued invoice sequence.

    The row is bumped with a single atomic UPDATE inside the transaction that
    writes the invoice, never by reading the highest number and adding one.
    Owned exclusively by invoice_number_service.
    """
    __tablename__ = "invoice_number_counters"
    __table_args__ = (
        db.UniqueConstraint("year", name="uq_invoice_number_counters_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False)
    last_number = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "last_number": self.last_number,
            "updated_at": to_utc_z(self.updated_at),
        }
