"""Run models: one pipeline execution."""

from datetime import datetime
from typing import Any

from pydantic import Field as PydanticField
from pydantic import field_validator
from sqlalchemy import DateTime
from sqlmodel import JSON, Column, Field, SQLModel

from .base import BaseSchema, Identifier, OpaqueValue, RunStatus, as_utc, utcnow


class Run(SQLModel, table=True):
    """Stored pipeline execution.

    ``placeholder`` is true while the row only exists because a child event
    arrived before the run's own creation event.
    """

    __tablename__ = "runs"

    run_id: str = Field(primary_key=True, max_length=255)
    pipeline: str = Field(index=True, max_length=255)
    input: Any = Field(default=None, sa_column=Column(JSON, nullable=True))
    started_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    ended_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    status: RunStatus = Field(default=RunStatus.running, index=True)
    placeholder: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class RunCreate(BaseSchema):
    """Payload of the ``create-run`` event."""

    run_id: Identifier
    pipeline: str = PydanticField(min_length=1, max_length=255)
    input: OpaqueValue = None
    started_at: datetime
    ended_at: datetime | None = None
    status: RunStatus = RunStatus.running


class RunUpdate(BaseSchema):
    """Payload of the ``update-run`` event (ending a run)."""

    ended_at: datetime | None = None
    status: RunStatus | None = None


class RunRead(BaseSchema):
    """API response schema for runs."""

    run_id: str
    pipeline: str
    input: OpaqueValue = None
    started_at: datetime
    ended_at: datetime | None = None
    status: RunStatus
    placeholder: bool = False

    @field_validator("started_at", "ended_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        # SQLite returns naive timestamps; they were stored as UTC
        return as_utc(value) if value is not None else None
