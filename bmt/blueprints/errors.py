"""
Service exception → HTTP response mapping shared by the API blueprints.

Every handler rolls the session back first so a request that failed half way
never leaves pending changes behind for the next one.
"""

import logging

from flask import request

from bmt.core.exceptions import (
    AlreadyCompletedError,
    DuplicateAnswerError,
    EvaluationClosedError,
    ForbiddenError,
    InternalError,
    InvalidTransitionError,
    MissingClosingRemarkError,
    NotFoundError,
    StaleProgressionError,
    ValidationError,
)
from bmt.models import db
from bmt.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Flask picks the most specific class, so EvaluationClosedError wins over StaleProgressionError.
_MAPPING = (
    (ValidationError, E.VALIDATION_INVALID, 422),
    (NotFoundError, E.NOT_FOUND, 404),
    (InvalidTransitionError, E.INVALID_TRANSITION, 409),
    (EvaluationClosedError, E.EVALUATION_CLOSED, 409),
    (StaleProgressionError, E.STALE_PROGRESSION, 409),
    (DuplicateAnswerError, E.CONFLICT_DUPLICATE, 409),
    (MissingClosingRemarkError, E.VALIDATION_REQUIRED, 422),
    (AlreadyCompletedError, E.CONFLICT_STATE, 409),
    (ForbiddenError, E.FORBIDDEN, 403),
)


def _make_handler(code, status):
    def _handle(error):
        db.session.rollback()
        logger.info(
            "%s on %s %s: %s", type(error).__name__, request.method, request.path, error,
            extra={"status": status},
        )
        return api_error(code, str(error), status=status, details=getattr(error, "details", None))
    return _handle


def register_error_handlers(bp):
    """Attach the domain exception handlers to a blueprint."""
    for exc_type, code, status in _MAPPING:
        bp.register_error_handler(exc_type, _make_handler(code, status))

    @bp.errorhandler(InternalError)
    def _handle_internal(error: InternalError):
        db.session.rollback()
        logger.error("Internal error in %s endpoint=%s: %s", bp.name, request.endpoint, error)
        return api_error(E.INTERNAL, "Internal server error", status=500)
