"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register one handler per type and get
consistent HTTP status codes and error codes everywhere. Raw store exceptions
never leave the service layer: they are re-classified at the commit boundary
(see bmt.utils.helpers.commit_or_raise).

Usage:
    from bmt.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Evaluation", resource_id=evaluation_id)
    raise ValidationError("Name is required", details={"name": "required"})
"""


class NotFoundError(Exception):
    """Raised when a referenced resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Evaluation", "Action").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidTransitionError(Exception):
    """Raised when a progression move goes backwards, stays put or skips a stage."""

    def __init__(self, current: str, requested: str, reason: str | None = None) -> None:
        self.current = current
        self.requested = requested
        msg = f"Cannot move progression from '{current}' to '{requested}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StaleProgressionError(Exception):
    """Raised when a write targets a stage other than the caller's current stage."""

    def __init__(self, message: str, progression: str | None = None) -> None:
        self.progression = progression
        super().__init__(message)


class EvaluationClosedError(StaleProgressionError):
    """Raised for writes against an evaluation that reached the terminal stage."""

    def __init__(self, evaluation_id: str) -> None:
        self.evaluation_id = evaluation_id
        super().__init__(f"Evaluation id={evaluation_id} is finished and no longer accepts changes")


class DuplicateAnswerError(Exception):
    """Raised when a participant already answered a question at a stage."""

    def __init__(self, question_id: str, participant_id: str, progression: str) -> None:
        self.question_id = question_id
        self.participant_id = participant_id
        self.progression = progression
        super().__init__(
            f"Participant id={participant_id} already answered question id={question_id} "
            f"at progression '{progression}'"
        )


class MissingClosingRemarkError(Exception):
    """Raised when an action is completed without closing remark text."""

    def __init__(self, action_id: str) -> None:
        self.action_id = action_id
        super().__init__(f"A closing remark is required to complete action id={action_id}")


class AlreadyCompletedError(Exception):
    """Raised when completing an action that is already completed."""

    def __init__(self, action_id: str) -> None:
        self.action_id = action_id
        super().__init__(f"Action id={action_id} is already completed")


class ForbiddenError(Exception):
    """Raised when the caller has no identity, or no (suitable) participant row."""


class InternalError(Exception):
    """Store or infrastructure failure that maps to no business rule."""
