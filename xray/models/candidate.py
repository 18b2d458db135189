"""Candidate models: optional, sampled evaluation records of a step."""

from datetime import datetime
from typing import Any

from pydantic import Field as PydanticField
from pydantic import ValidationError
from sqlalchemy import DateTime, Text
from sqlmodel import Column, Field, SQLModel

from .base import BaseSchema, Decision, Identifier, utcnow


class Candidate(SQLModel, table=True):
    """Stored candidate decision, unique per (candidate_id, step_id)."""

    __tablename__ = "candidates"

    candidate_id: str = Field(primary_key=True, max_length=255)
    step_id: str = Field(
        primary_key=True,
        foreign_key="steps.step_id",
        ondelete="CASCADE",
        index=True,
        max_length=255,
    )
    decision: Decision = Field(index=True)
    score: float | None = Field(default=None)
    reason: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class CandidateEntry(BaseSchema):
    """One candidate decision as sent by a pipeline."""

    candidate_id: Identifier
    decision: Decision
    score: float | None = None
    reason: str | None = None


class CandidateCreate(CandidateEntry):
    """Payload of the ``create-candidate`` event."""

    run_id: Identifier | None = None


class CandidateBulkCreate(BaseSchema):
    """Payload of the bulk candidate endpoint.

    Entries are kept raw so malformed ones can be discarded individually
    instead of failing the whole batch.
    """

    candidates: list[Any] = PydanticField(min_length=1)
    run_id: Identifier | None = None


def split_valid_candidates(
    entries: list[Any],
) -> tuple[list[CandidateEntry], list[Any]]:
    """Validate bulk entries one by one.

    Args:
        entries: Raw bulk entries, any JSON value.

    Returns:
        Tuple of (valid entries, discarded raw entries).
    """
    valid: list[CandidateEntry] = []
    discarded: list[Any] = []
    for entry in entries:
        try:
            valid.append(CandidateEntry.model_validate(entry))
        except ValidationError:
            discarded.append(entry)
    return valid, discarded


class CandidateRead(BaseSchema):
    """API response schema for candidates."""

    candidate_id: str
    step_id: str
    decision: Decision
    score: float | None = None
    reason: str | None = None
