"""Exceptions for the X-Ray service."""

from .domain import (
    DatabaseConnectionError,
    DatabaseError,
    DatabaseIntegrityError,
    EntityNotFoundError,
    InvalidJobPayloadError,
    QueueError,
    QueueUnavailableError,
    RunNotFoundError,
    StepNotFoundError,
    UnknownJobTypeError,
    XRayError,
)

__all__ = [
    "DatabaseConnectionError",
    "DatabaseError",
    "DatabaseIntegrityError",
    "EntityNotFoundError",
    "InvalidJobPayloadError",
    "QueueError",
    "QueueUnavailableError",
    "RunNotFoundError",
    "StepNotFoundError",
    "UnknownJobTypeError",
    "XRayError",
]
