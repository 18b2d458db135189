"""
Base models for X-Ray.

Shared enumerations, constrained types and the base schema used by the
API and job payload models. Table models derive from ``sqlmodel.SQLModel``
directly.
"""

import enum
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    JsonValue,
    StringConstraints,
    ValidationInfo,
    field_validator,
)

# Caller supplied identifier; never generated server side
Identifier = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]

# Opaque structured payload, stored and returned verbatim
OpaqueValue = JsonValue

PLACEHOLDER_MARKER: dict[str, JsonValue] = {"auto_created": True}


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to UTC, treating naive values as UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class BaseSchema(BaseModel):
    """Base model for request, response and job payload schemas."""

    model_config = ConfigDict(from_attributes=True)

    @field_validator("*", mode="before")
    @classmethod
    def empty_to_none(cls, value: Any, info: ValidationInfo) -> Any:
        """Convert blank required strings to None so they fail validation.

        Only plain ``str`` fields (identifiers, names) are touched; opaque
        payloads and optional text pass through verbatim.
        """
        if info.field_name is None or cls.model_fields[info.field_name].annotation is not str:
            return value
        if isinstance(value, str):
            value = value.replace("\x00", " ")
            if not value.strip():
                return None
        return value


class RunStatus(str, enum.Enum):
    """Enumeration of run status values."""

    running = "running"
    success = "success"
    error = "error"


TERMINAL_RUN_STATUSES = frozenset({RunStatus.success, RunStatus.error})


class StepType(str, enum.Enum):
    """Semantic type of a step, shared by every pipeline."""

    generate = "generate"
    filter = "filter"
    rank = "rank"
    select = "select"


class Decision(str, enum.Enum):
    """Outcome recorded for a candidate at a step."""

    accepted = "accepted"
    rejected = "rejected"
