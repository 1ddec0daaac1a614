"""Shared utility functions for services and blueprints.

get_or_raise:     PK lookup that raises NotFoundError instead of returning None
commit_or_raise:  single commit boundary that re-classifies store failures
parse_datetime:   lenient ISO date/datetime parsing for request bodies
clean_text:       type-checked, stripped string from a request field
"""
import logging
from datetime import date, datetime, time, timezone

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from bmt.core.exceptions import InternalError, NotFoundError, ValidationError
from bmt.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    obj = db.session.get(model, pk) if pk else None
    if obj is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    return obj


def commit_or_raise(on_integrity_error=None):
    """Commit the current session; roll back and re-classify on failure.

    Args:
        on_integrity_error: Optional zero-arg callable returning the exception
            to raise for an IntegrityError (e.g. a DuplicateAnswerError built
            from the caller's context). Defaults to ValidationError.

    IntegrityError   → on_integrity_error() or ValidationError
    StaleDataError   → InternalError (concurrent modification of a versioned row)
    OperationalError → InternalError (connection / lock issues)
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        if on_integrity_error is not None:
            raise on_integrity_error() from exc
        raise ValidationError("Duplicate or constraint violation") from exc
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning("Concurrent modification detected on commit: %s", exc)
        raise InternalError("The record was modified concurrently; retry the request") from exc
    except OperationalError as exc:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        raise InternalError("Database error") from exc


def parse_datetime(value):
    """Parse an ISO date or datetime string into an aware UTC datetime.

    Returns None for empty input; raises ValidationError on bad input.
    Naive values are taken as UTC. Bare dates become midnight UTC.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(
                "Invalid date format. Use YYYY-MM-DD or an ISO 8601 datetime.",
                details={"due_date": str(value)},
            ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def clean_text(value, field, required=False):
    """Return `value` stripped, or "" for None.

    Raises ValidationError for non-string input, and for blank input when
    `required` is set.
    """
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"Field '{field}' must be a string", details={field: "must be a string"})
    value = value.strip()
    if required and not value:
        raise ValidationError(f"Field '{field}' is required", details={field: "required"})
    return value
