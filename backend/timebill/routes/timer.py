# Overview: Flask API routes for the running timer; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import BillingError
from ..services import timer_service
from ..validation import require_int


timer_bp = Blueprint("timer", __name__, url_prefix="/api/timer")


@timer_bp.post("/start")
@require_auth
def start_timer_route():
    """Start a timer. 409 if one is already running."""
    try:
        data = request.get_json(silent=True) or {}
        task_id = require_int(data.get("task_id"), "task_id")

        entry = timer_service.start_timer(
            worker_id=g.current_worker.id,
            task_id=task_id,
            note=data.get("note"),
        )
        body = entry.to_dict()
        body["task"] = entry.task.to_summary()
        return jsonify({"entry": body}), 201

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to start timer")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500


@timer_bp.post("/stop")
@require_auth
def stop_timer_route():
    """Stop the running timer. 404 if none is running."""
    try:
        entry = timer_service.stop_timer(worker_id=g.current_worker.id)
        body = entry.to_dict()
        body["task"] = entry.task.to_summary()
        return jsonify({"entry": body})

    except BillingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to stop timer")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500


@timer_bp.get("/current")
@require_auth
def current_timer_route():
    current = timer_service.get_current_timer(g.current_worker.id)
    return jsonify({"entry": current, "is_running": current is not None})
