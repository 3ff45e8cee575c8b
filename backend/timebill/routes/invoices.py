# Overview: Flask API routes for invoices; parses input and returns JSON responses.

"""
Invoice Routes

Invoices are scoped to the worker who issued them (owner_id). Totals and
items are read-only over HTTP once created; only notes, due_date,
payment_terms and status can change afterwards.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import BillingError, ValidationError
from ..services import invoice_service, lifecycle_service
from ..validation import clamp_limit, require_date, require_int


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    try:
        invoices = invoice_service.list_invoices(
            owner_id=g.current_worker.id,
            status=request.args.get("status"),
            client_id=request.args.get("client_id", type=int),
            project_id=request.args.get("project_id", type=int),
            limit=clamp_limit(request.args.get("limit", type=int), 200, 200),
        )
        result = [inv.to_dict(include_items=False) for inv in invoices]
        return jsonify({"invoices": result, "count": len(result)})

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code


@invoices_bp.post("/generate")
@require_auth
def generate_invoice_route():
    """
    Generate a DRAFT invoice from approved, billable time and billable
    expenses for a project and inclusive date range.

    Request body:
    {
        "project_id": 3,
        "start_date": "2025-03-01",
        "end_date": "2025-03-31",
        "due_date": "2025-04-30",   (optional)
        "notes": "March retainer"    (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.generate_invoice(
            owner_id=g.current_worker.id,
            project_id=require_int(data.get("project_id"), "project_id"),
            start_date=require_date(data.get("start_date"), "start_date"),
            end_date=require_date(data.get("end_date"), "end_date"),
            due_date=require_date(data.get("due_date"), "due_date", required=False),
            notes=data.get("notes"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 201

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate invoice")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500


@invoices_bp.post("")
@require_auth
def create_invoice_route():
    """Manual invoice from caller-supplied items."""
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")

        project_id = data.get("project_id")
        invoice = invoice_service.create_manual_invoice(
            owner_id=g.current_worker.id,
            client_id=require_int(data.get("client_id"), "client_id"),
            project_id=require_int(project_id, "project_id") if project_id is not None else None,
            items=data.get("items"),
            due_date=require_date(data.get("due_date"), "due_date"),
            issue_date=require_date(data.get("issue_date"), "issue_date", required=False),
            number=data.get("number"),
            status=data.get("status"),
            tax_rate=data.get("tax_rate"),
            discount=data.get("discount"),
            subtotal=data.get("subtotal"),
            tax=data.get("tax"),
            total=data.get("total"),
            currency=data.get("currency"),
            notes=data.get("notes"),
            payment_terms=data.get("payment_terms"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 201

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(owner_id=g.current_worker.id, invoice_id=invoice_id)
        return jsonify({"invoice": invoice.to_dict()})
    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code


@invoices_bp.patch("/<int:invoice_id>")
@require_auth
def update_invoice_route(invoice_id: int):
    """
    Patch notes, due_date, payment_terms and/or status. A PAID invoice
    answers 400 immutable for any field other than status.
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")

        invoice = lifecycle_service.update_invoice(
            owner_id=g.current_worker.id,
            invoice_id=invoice_id,
            changes=data,
        )
        return jsonify({"invoice": invoice.to_dict()})

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500


@invoices_bp.put("/<int:invoice_id>/status")
@require_auth
def update_invoice_status_route(invoice_id: int):
    """
    Move an invoice along DRAFT -> SENT -> {PAID, OVERDUE} -> PAID.

    Request body: {"status": "SENT"}
    """
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("status"):
            raise ValidationError("status is required")

        invoice = lifecycle_service.transition_invoice(
            owner_id=g.current_worker.id,
            invoice_id=invoice_id,
            to_status=data["status"],
        )
        return jsonify({"invoice": invoice.to_dict()})

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update invoice status")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500
