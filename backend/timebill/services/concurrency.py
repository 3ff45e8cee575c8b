# Overview: Service-layer concurrency helpers; row locks and whole-operation retry.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Failures worth another attempt: lock timeouts / deadlocks, and version_id_col mismatches
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """SELECT ... FOR UPDATE on backends that support it (a no-op on SQLite)."""
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run ``func`` (a complete read-modify-commit unit) and re-run it from
    scratch when the database reports a transient conflict.

    Every failure rolls the session back first. Retryable ones sleep with
    exponential backoff and try again until ``attempts`` is used up; any other
    exception propagates immediately.
    """
    cfg = current_app.config
    max_attempts = attempts if attempts is not None else cfg.get("DB_RETRY_ATTEMPTS", 3)
    delay = backoff_base if backoff_base is not None else cfg.get("DB_RETRY_BACKOFF", 0.1)
    max_attempts = max(1, max_attempts)

    attempt = 1
    while True:
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= max_attempts:
                current_app.logger.error(
                    "Giving up after %s attempt(s): %s", attempt, exc.__class__.__name__
                )
                raise
            current_app.logger.warning(
                "Transient DB conflict (%s), retry %s of %s",
                exc.__class__.__name__, attempt, max_attempts - 1,
            )
            time.sleep(delay * (2 ** (attempt - 1)))
            attempt += 1
        except Exception:
            db.session.rollback()
            raise
