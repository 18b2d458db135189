"""
Domain exceptions for the business logic layer.

These exceptions are raised by repositories, services and workers to
represent failures without coupling to HTTP status codes. The API layer
maps them to responses in ``xray.api.exception_handlers``.
"""

from typing import Self


class XRayError(Exception):
    """Base exception for all X-Ray errors."""

    def with_context(self, detail: str) -> Self:
        """Add context information to the exception.

        Args:
            detail: Additional details about the error

        Returns:
            Self with updated message
        """
        self.args = (detail,)
        return self


class EntityNotFoundError(XRayError):
    """Raised when an entity is not found in the database."""

    pass


class RunNotFoundError(EntityNotFoundError):
    """Raised when a run is not found."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Run with ID '{run_id}' not found")


class StepNotFoundError(EntityNotFoundError):
    """Raised when a step is not found."""

    def __init__(self, step_id: str) -> None:
        super().__init__(f"Step with ID '{step_id}' not found")


# Database errors
class DatabaseError(XRayError):
    """Raised when there's a database operation error."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when the database cannot be reached."""

    pass


class DatabaseIntegrityError(DatabaseError):
    """Raised when a referential integrity constraint is violated.

    Inside workers this is a retryable failure: the parent row may still be
    in flight through another job.
    """

    pass


# Queue errors
class QueueError(XRayError):
    """Base exception for job queue errors."""

    pass


class QueueUnavailableError(QueueError):
    """Raised when a job cannot be handed to the broker."""

    pass


class UnknownJobTypeError(QueueError):
    """Raised when a worker receives a job type it cannot process."""

    def __init__(self, job_type: str) -> None:
        super().__init__(f"Unknown job type: {job_type}")


class InvalidJobPayloadError(QueueError):
    """Raised when a job payload does not match its job type."""

    def __init__(self, job_type: str, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid payload for job '{job_type}': {detail}")
