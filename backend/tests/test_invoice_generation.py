# Overview: Pytest coverage for invoice generation, totals and manual invoices.

"""
Invoice Generator Tests

Checks the rounding contract end to end:
- hours per task are summed from raw seconds (no per-entry rounding)
- each line amount is quantity x rate, rounded, then summed (round-then-sum)
- subtotal, tax and total are each rounded to 2 places
and that an empty selection never writes an invoice or consumes a number.
"""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

import pytest
from timebill.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from timebill.models import Invoice, InvoiceItem
from timebill.services import invoice_service
from timebill.services.invoice_number_service import peek_next_invoice_number


MARCH = {"start_date": date(2025, 3, 1), "end_date": date(2025, 3, 31), "today": date(2025, 4, 1)}


def _assert_totals_consistent(invoice):
    assert invoice.subtotal == sum((item.amount for item in invoice.items), Decimal("0.00"))
    assert invoice.tax == (invoice.subtotal * invoice.tax_rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    assert invoice.total == invoice.subtotal + invoice.tax - invoice.discount


class TestComputeTotals:

    def test_basic(self):
        totals = invoice_service.compute_totals([Decimal("250.00")], Decimal("0.25"))
        assert totals.subtotal == Decimal("250.00")
        assert totals.tax == Decimal("62.50")
        assert totals.total == Decimal("312.50")

    def test_round_then_sum(self):
        # 0.014 + 0.014 rounds per line to 0.01 + 0.01
        totals = invoice_service.compute_totals([Decimal("0.014"), Decimal("0.014")], Decimal("0.25"))
        assert totals.subtotal == Decimal("0.02")
        assert totals.tax == Decimal("0.01")
        assert totals.total == Decimal("0.03")

    def test_discount(self):
        totals = invoice_service.compute_totals([Decimal("100.00")], Decimal("0.25"), Decimal("10.00"))
        assert totals.total == Decimal("115.00")


class TestGenerateInvoice:

    def test_worked_example(self, db_session, worker_a, project_a, task_a, make_entry):
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 3, 9), minutes=120)
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 4, 9), minutes=180)

        invoice = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        assert invoice.number == "2025-0001"
        assert invoice.status == "DRAFT"
        assert invoice.client_id == project_a.client_id
        assert invoice.issue_date == date(2025, 4, 1)
        assert invoice.due_date == date(2025, 5, 1)
        assert len(invoice.items) == 1

        item = invoice.items[0]
        assert item.description == "work on task: Design"
        assert item.quantity == Decimal("5.00")
        assert item.rate == Decimal("50.00")
        assert item.amount == Decimal("250.00")

        assert invoice.subtotal == Decimal("250.00")
        assert invoice.tax == Decimal("62.50")
        assert invoice.total == Decimal("312.50")
        _assert_totals_consistent(invoice)

    def test_hours_summed_before_rounding(self, db_session, worker_a, project_a, task_a, make_entry):
        for day in (3, 4, 5):
            make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, day, 9), minutes=20)

        invoice = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        assert invoice.items[0].quantity == Decimal("1.00")
        assert invoice.items[0].amount == Decimal("50.00")

    def test_round_then_sum_across_lines(self, db_session, worker_a, project_a, task_a, task_a2, make_entry):
        # 36 seconds is 0.01 h; at 0.70/h each line is 0.007
        worker_a.hourly_rate = Decimal("0.70")
        db_session.commit()
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 3, 9), seconds=36)
        make_entry(worker=worker_a, task=task_a2, start=datetime(2025, 3, 3, 10), seconds=36)

        invoice = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        assert [item.amount for item in invoice.items] == [Decimal("0.01"), Decimal("0.01")]
        assert invoice.subtotal == Decimal("0.02")
        assert invoice.tax == Decimal("0.01")
        assert invoice.total == Decimal("0.03")

    def test_one_line_per_task(self, db_session, worker_a, project_a, task_a, task_a2, make_entry):
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 3, 9), minutes=60)
        make_entry(worker=worker_a, task=task_a2, start=datetime(2025, 3, 3, 11), minutes=30)

        invoice = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        assert [item.position for item in invoice.items] == [1, 2]
        assert [item.task_id for item in invoice.items] == [task_a.id, task_a2.id]
        assert invoice.subtotal == Decimal("75.00")
        _assert_totals_consistent(invoice)

    def test_amount_is_quantity_times_rate(self, db_session, worker_a, project_a, task_a, make_entry):
        # 20 minutes is 0.3333 h: quantity 0.33, so the line is 16.50, not 16.67
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 3, 9), minutes=20)

        invoice = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        item = invoice.items[0]
        assert item.quantity == Decimal("0.33")
        assert item.rate == Decimal("50.00")
        assert item.amount == item.quantity * item.rate == Decimal("16.50")
        _assert_totals_consistent(invoice)

    def test_only_owner_time_at_owner_rate(self, db_session, worker_a, worker_b, project_a, task_a, make_entry, make_expense):
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 3, 9), minutes=60)
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 4, 9), minutes=30)
        make_entry(worker=worker_b, task=task_a, start=datetime(2025, 3, 3, 9), minutes=60)
        make_expense(worker=worker_b, project=project_a, day=date(2025, 3, 10), amount="42.10")

        invoice = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        assert len(invoice.items) == 1
        item = invoice.items[0]
        assert item.task_id == task_a.id
        assert item.quantity == Decimal("1.50")
        assert item.rate == Decimal("50.00")
        assert invoice.subtotal == Decimal("75.00")

    def test_other_workers_time_alone_is_not_invoiced(self, db_session, worker_a, worker_b, project_a, task_a, make_entry):
        make_entry(worker=worker_b, task=task_a, start=datetime(2025, 3, 3, 9), minutes=60)

        with pytest.raises(InvalidStateError):
            invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

    def test_default_rate_when_owner_has_none(self, app, db_session, worker_a, project_a, task_a, make_entry):
        worker_a.hourly_rate = None
        db_session.commit()
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 3, 9), minutes=60)

        invoice = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        assert invoice.items[0].rate == Decimal(app.config["DEFAULT_HOURLY_RATE"])

    def test_selection_filters(self, db_session, worker_a, project_a, task_a, make_entry):
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 3, 9), minutes=60)
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 4, 9), minutes=60, approved=False)
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 5, 9), minutes=60, billable=False)
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 2, 28, 23), minutes=60)
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 4, 1, 0), minutes=60)
        deleted = make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 6, 9), minutes=60)
        deleted.deleted_at = datetime(2025, 3, 7)
        db_session.commit()

        invoice = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        assert invoice.items[0].quantity == Decimal("1.00")
        assert invoice.subtotal == Decimal("50.00")

    def test_range_is_inclusive_of_both_days(self, db_session, worker_a, project_a, task_a, make_entry):
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 31, 23, 30), minutes=60)

        invoice = invoice_service.generate_invoice(
            owner_id=worker_a.id,
            project_id=project_a.id,
            start_date=date(2025, 3, 31),
            end_date=date(2025, 3, 31),
            today=date(2025, 4, 1),
        )
        assert invoice.subtotal == Decimal("50.00")
        assert invoice.period_start == invoice.period_end == date(2025, 3, 31)

    def test_expenses_become_lines(self, db_session, worker_a, project_a, task_a, make_entry, make_expense):
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 3, 9), minutes=60)
        make_expense(worker=worker_a, project=project_a, day=date(2025, 3, 10), amount="42.10")
        make_expense(worker=worker_a, project=project_a, day=date(2025, 3, 11), amount="9.99", billable=False)

        invoice = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        assert [item.description for item in invoice.items] == ["work on task: Design", "travel: train"]
        assert invoice.items[1].quantity == Decimal("1.00")
        assert invoice.subtotal == Decimal("92.10")
        _assert_totals_consistent(invoice)

    def test_expenses_only(self, db_session, worker_a, project_a, make_expense):
        make_expense(worker=worker_a, project=project_a, day=date(2025, 3, 10), amount="10.00")

        invoice = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)
        assert invoice.total == Decimal("12.50")

    def test_empty_range_writes_nothing(self, db_session, worker_a, project_a, task_a, make_entry):
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 5, 3, 9), minutes=60)

        with pytest.raises(InvalidStateError):
            invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceItem).count() == 0
        assert peek_next_invoice_number(2025) == "2025-0001"

    def test_start_after_end(self, db_session, worker_a, project_a):
        with pytest.raises(ValidationError):
            invoice_service.generate_invoice(
                owner_id=worker_a.id,
                project_id=project_a.id,
                start_date=date(2025, 3, 31),
                end_date=date(2025, 3, 1),
            )

    def test_foreign_project(self, db_session, worker_b, project_a):
        with pytest.raises(NotFoundError):
            invoice_service.generate_invoice(owner_id=worker_b.id, project_id=project_a.id, **MARCH)

    def test_numbers_increase(self, db_session, worker_a, project_a, task_a, make_entry):
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 3, 9), minutes=60)

        first = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)
        second = invoice_service.generate_invoice(owner_id=worker_a.id, project_id=project_a.id, **MARCH)

        assert (first.number, second.number) == ("2025-0001", "2025-0002")

    def test_explicit_due_date_and_notes(self, db_session, worker_a, project_a, task_a, make_entry):
        make_entry(worker=worker_a, task=task_a, start=datetime(2025, 3, 3, 9), minutes=60)

        invoice = invoice_service.generate_invoice(
            owner_id=worker_a.id,
            project_id=project_a.id,
            due_date=date(2025, 4, 15),
            notes="March work",
            **MARCH,
        )
        assert invoice.due_date == date(2025, 4, 15)
        assert invoice.notes == "March work"

    def test_due_date_before_issue_date(self, db_session, worker_a, project_a):
        with pytest.raises(ValidationError):
            invoice_service.generate_invoice(
                owner_id=worker_a.id,
                project_id=project_a.id,
                due_date=date(2025, 3, 1),
                **MARCH,
            )


class TestManualInvoice:

    ITEMS = [
        {"description": "Consulting", "quantity": 2, "rate": "80"},
        {"description": "Hosting", "quantity": "1.5", "rate": "19.99"},
    ]

    def _create(self, worker, customer, **overrides):
        kwargs = {
            "owner_id": worker.id,
            "client_id": customer.id,
            "items": self.ITEMS,
            "issue_date": date(2025, 5, 1),
            "due_date": date(2025, 5, 31),
        }
        kwargs.update(overrides)
        return invoice_service.create_manual_invoice(**kwargs)

    def test_totals_computed(self, db_session, worker_a, client_a):
        invoice = self._create(worker_a, client_a)

        assert invoice.number == "2025-0001"
        assert invoice.status == "DRAFT"
        assert [item.amount for item in invoice.items] == [Decimal("160.00"), Decimal("29.99")]
        assert invoice.subtotal == Decimal("189.99")
        assert invoice.tax == Decimal("47.50")
        assert invoice.total == Decimal("237.49")
        _assert_totals_consistent(invoice)

    def test_matching_override_is_accepted(self, db_session, worker_a, client_a):
        invoice = self._create(worker_a, client_a, subtotal="189.99", tax="47.50", total="237.49")
        assert invoice.total == Decimal("237.49")

    def test_mismatched_override_is_rejected(self, db_session, worker_a, client_a):
        with pytest.raises(ValidationError):
            self._create(worker_a, client_a, total="250.00")
        assert db_session.query(Invoice).count() == 0

    def test_tax_rate_is_a_fraction(self, db_session, worker_a, client_a):
        invoice = self._create(worker_a, client_a, tax_rate="0.1")
        assert invoice.tax == Decimal("19.00")

        with pytest.raises(ValidationError):
            self._create(worker_a, client_a, tax_rate="25")

    def test_discount(self, db_session, worker_a, client_a):
        invoice = self._create(worker_a, client_a, discount="7.49")
        assert invoice.total == Decimal("230.00")
        _assert_totals_consistent(invoice)

    def test_explicit_number(self, db_session, worker_a, client_a):
        invoice = self._create(worker_a, client_a, number="2025-0007")
        assert invoice.number == "2025-0007"

        following = self._create(worker_a, client_a)
        assert following.number == "2025-0008"

    def test_duplicate_number(self, db_session, worker_a, client_a):
        self._create(worker_a, client_a, number="2025-0007")
        with pytest.raises(ConflictError):
            self._create(worker_a, client_a, number="2025-0007")

    def test_malformed_number(self, db_session, worker_a, client_a):
        with pytest.raises(ValidationError):
            self._create(worker_a, client_a, number="INV-7")

    def test_initial_status(self, db_session, worker_a, client_a):
        invoice = self._create(worker_a, client_a, status="paid")
        assert invoice.status == "PAID"
        assert invoice.paid_at is not None
        assert invoice.sent_at is not None

    def test_items_required(self, db_session, worker_a, client_a):
        with pytest.raises(ValidationError):
            self._create(worker_a, client_a, items=[])

    def test_negative_quantity(self, db_session, worker_a, client_a):
        with pytest.raises(ValidationError):
            self._create(worker_a, client_a, items=[{"description": "x", "quantity": -1, "rate": 10}])

    def test_bad_currency(self, db_session, worker_a, client_a):
        with pytest.raises(ValidationError):
            self._create(worker_a, client_a, currency="EURO")

    def test_foreign_client(self, db_session, worker_b, client_a):
        with pytest.raises(NotFoundError):
            self._create(worker_b, client_a)
