"""Step and step summary models.

A step is one decision point within a run. Its semantic ``type`` is the
only thing cross-pipeline queries rely on, so it is an enum column rather
than free text.
"""

from datetime import datetime
from typing import Any, Self

from pydantic import Field as PydanticField
from pydantic import NonNegativeInt
from sqlalchemy import DateTime, Float, Index, cast, func
from sqlmodel import JSON, Column, Field, SQLModel

from .base import BaseSchema, Identifier, OpaqueValue, StepType, utcnow
from .candidate import CandidateRead


class Step(SQLModel, table=True):
    """Stored step of a run.

    The ``metadata`` column is exposed as ``step_metadata`` because
    ``metadata`` is reserved on declarative classes.
    """

    __tablename__ = "steps"

    step_id: str = Field(primary_key=True, max_length=255)
    run_id: str = Field(foreign_key="runs.run_id", ondelete="CASCADE", index=True, max_length=255)
    name: str = Field(index=True, max_length=255)
    type: StepType = Field(index=True)
    input_count: int | None = Field(default=None)
    output_count: int | None = Field(default=None)
    step_metadata: Any = Field(default=None, sa_column=Column("metadata", JSON, nullable=True))
    placeholder: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class StepSummary(SQLModel, table=True):
    """Aggregate accepted/rejected counts of a step, replaced as a whole."""

    __tablename__ = "step_summaries"

    step_id: str = Field(
        primary_key=True, foreign_key="steps.step_id", ondelete="CASCADE", max_length=255
    )
    rejected: int = Field(default=0)
    accepted: int = Field(default=0)
    rejection_breakdown: Any = Field(default=None, sa_column=Column(JSON, nullable=True))
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


_summary_columns = StepSummary.__table__.c  # type: ignore[attr-defined]

# Supports the rejection-rate computation of the cross-pipeline query
Index(
    "ix_step_summaries_rejection_rate",
    cast(_summary_columns.rejected, Float)
    / func.nullif(_summary_columns.rejected + _summary_columns.accepted, 0),
)


class StepCreate(BaseSchema):
    """Payload of the ``create-step`` event.

    ``pipeline`` is only a hint used when the parent run has to be created
    as a placeholder.
    """

    step_id: Identifier
    run_id: Identifier
    name: str = PydanticField(min_length=1, max_length=255)
    type: StepType
    metadata: OpaqueValue = PydanticField(default_factory=dict)
    pipeline: str | None = None


class StepSummaryUpdate(BaseSchema):
    """Payload of the ``update-step-summary`` event.

    Summaries are complete snapshots: a later one replaces an earlier one.
    """

    input_count: NonNegativeInt | None = None
    output_count: NonNegativeInt | None = None
    rejection_breakdown: dict[str, NonNegativeInt] | None = None
    run_id: Identifier | None = None


class StepSummaryRead(BaseSchema):
    """API response schema for step summaries."""

    rejected: int
    accepted: int
    rejection_breakdown: dict[str, int] = PydanticField(default_factory=dict)
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, summary: StepSummary) -> Self:
        return cls(
            rejected=summary.rejected,
            accepted=summary.accepted,
            rejection_breakdown=summary.rejection_breakdown or {},
            updated_at=summary.updated_at,
        )


class StepRead(BaseSchema):
    """API response schema for steps."""

    step_id: str
    run_id: str
    name: str
    type: StepType
    input_count: int | None = None
    output_count: int | None = None
    metadata: OpaqueValue = None
    placeholder: bool = False

    @classmethod
    def from_entity(cls, step: Step) -> Self:
        return cls(
            step_id=step.step_id,
            run_id=step.run_id,
            name=step.name,
            type=step.type,
            input_count=step.input_count,
            output_count=step.output_count,
            metadata=step.step_metadata,
            placeholder=step.placeholder,
        )


class StepDetail(StepRead):
    """Step with its summary and recorded candidates."""

    summary: StepSummaryRead | None = None
    candidates: list[CandidateRead] = PydanticField(default_factory=list)


class HighRejectionStep(BaseSchema):
    """Row of the cross-pipeline high rejection query."""

    step_id: str
    run_id: str
    pipeline: str
    name: str
    type: StepType
    metadata: OpaqueValue = None
    rejected: int
    accepted: int
    rejection_rate: float


class RejectionReasonTotal(BaseSchema):
    """Rejection reason aggregated over all steps of one type."""

    reason: str
    count: int
    step_count: int
