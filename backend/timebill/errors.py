# Overview: Domain error hierarchy shared by services and routes.

"""
Billing domain errors.

Every error carries a stable machine-readable ``code`` and the HTTP status the
route layer maps it to. These are expected outcomes of business rules, not
failures: routes return them to the caller without logging.
"""

from __future__ import annotations


class BillingError(Exception):
    """Base class for expected, caller-facing errors."""

    code = "billing_error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": str(self), "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BillingError):
    """400-level input problem."""

    code = "validation_error"


class NotFoundError(BillingError):
    """Referenced entity is missing or not owned by the caller."""

    code = "not_found"
    status_code = 404


class ConflictError(BillingError):
    """409-level uniqueness violation (second running timer, duplicate number)."""

    code = "conflict"
    status_code = 409


class InvalidStateError(BillingError):
    """Operation is not meaningful in the current data state."""

    code = "invalid_state"


class InvalidTransitionError(BillingError):
    """Illegal invoice status change."""

    code = "invalid_transition"


class ImmutableError(BillingError):
    """Mutation attempted on a PAID invoice."""

    code = "immutable"
