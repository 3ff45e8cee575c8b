# Overview: Flask API routes for time entries; parses input and returns JSON responses.

"""
Time Entry Routes

Workers see and edit only their own entries. Approval is done by the owner of
the project the entries were logged against.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import BillingError, ValidationError
from ..models import TimeEntry
from ..services import timer_service
from ..validation import (
    TIME_ENTRY_POLICY,
    clamp_limit,
    validate_payload,
    require_date,
    require_int,
    parse_bool_arg,
)


time_entries_bp = Blueprint("time_entries", __name__, url_prefix="/api/time-entries")


@time_entries_bp.get("")
@require_auth
def list_entries_route():
    try:
        entries = timer_service.list_entries(
            worker_id=g.current_worker.id,
            task_id=request.args.get("task_id", type=int),
            project_id=request.args.get("project_id", type=int),
            billable=parse_bool_arg(request.args.get("billable")),
            date_from=require_date(request.args.get("date_from"), "date_from", required=False),
            date_to=require_date(request.args.get("date_to"), "date_to", required=False),
            limit=clamp_limit(request.args.get("limit", type=int), 500, 500),
        )
        result = [e.to_dict() for e in entries]
        return jsonify({"entries": result, "count": len(result)})

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code


@time_entries_bp.post("")
@require_auth
def create_entry_route():
    """Manual entry: start_at and end_at supplied together."""
    try:
        patch = validate_payload(
            model=TimeEntry,
            payload=request.get_json(silent=True),
            policy=TIME_ENTRY_POLICY,
            partial=False,
        )
        entry = timer_service.create_manual_entry(
            worker_id=g.current_worker.id,
            task_id=patch["task_id"],
            start_at=patch["start_at"],
            end_at=patch["end_at"],
            note=patch.get("note"),
            billable=patch.get("billable", True),
        )
        return jsonify({"entry": entry.to_dict()}), 201

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create time entry")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500


@time_entries_bp.get("/<int:entry_id>")
@require_auth
def get_entry_route(entry_id: int):
    try:
        entry = timer_service.get_entry(worker_id=g.current_worker.id, entry_id=entry_id)
        return jsonify({"entry": entry.to_dict()})
    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code


@time_entries_bp.patch("/<int:entry_id>")
@require_auth
def update_entry_route(entry_id: int):
    try:
        patch = validate_payload(
            model=TimeEntry,
            payload=request.get_json(silent=True),
            policy=TIME_ENTRY_POLICY,
            partial=True,
        )
        if not patch:
            raise ValidationError("No changes provided")

        entry = timer_service.update_entry(
            worker_id=g.current_worker.id,
            entry_id=entry_id,
            changes=patch,
        )
        return jsonify({"entry": entry.to_dict()})

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update time entry")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500


@time_entries_bp.delete("/<int:entry_id>")
@require_auth
def delete_entry_route(entry_id: int):
    try:
        entry = timer_service.delete_entry(worker_id=g.current_worker.id, entry_id=entry_id)
        return jsonify({"entry": entry.to_dict()})

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete time entry")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500


@time_entries_bp.post("/approve")
@require_auth
def approve_entries_route():
    try:
        data = request.get_json(silent=True) or {}
        raw_ids = data.get("entry_ids")
        if not isinstance(raw_ids, list) or not raw_ids:
            raise ValidationError("entry_ids must be a non-empty list")
        entry_ids = [require_int(i, "entry_ids[]") for i in raw_ids]

        entries = timer_service.approve_entries(
            approver_id=g.current_worker.id,
            entry_ids=entry_ids,
        )
        return jsonify({"entries": [e.to_dict() for e in entries], "count": len(entries)})

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve time entries")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500
