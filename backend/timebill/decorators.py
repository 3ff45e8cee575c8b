# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import directory_service


WORKER_ID_HEADER = "X-Worker-Id"


def require_auth(f):
    """
    Establish caller identity.

    Credentials are validated by the upstream gateway, which forwards the
    authenticated worker id in X-Worker-Id. Sets g.current_worker to the
    active Worker.

    SECURITY: Returns 401 if the header is missing, malformed, or names an
    unknown or deactivated worker.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_id = request.headers.get(WORKER_ID_HEADER, "").strip()
        if not raw_id:
            return jsonify({"error": "Authentication required", "code": "unauthenticated"}), 401
        if not raw_id.isdigit():
            return jsonify({"error": "Invalid worker identity", "code": "unauthenticated"}), 401

        worker = directory_service.get_active_worker(int(raw_id))
        if not worker:
            return jsonify({"error": "Invalid worker identity", "code": "unauthenticated"}), 401

        g.current_worker = worker

        return f(*args, **kwargs)

    return decorated_function
