"""
X-Ray data models.

SQLModel tables for the Run → Step → {StepSummary, Candidate} hierarchy
and the pydantic schemas used by the API and the job queue.
"""

from .base import (
    PLACEHOLDER_MARKER,
    TERMINAL_RUN_STATUSES,
    BaseSchema,
    Decision,
    Identifier,
    OpaqueValue,
    RunStatus,
    StepType,
    as_utc,
    utcnow,
)
from .candidate import (
    Candidate,
    CandidateBulkCreate,
    CandidateCreate,
    CandidateEntry,
    CandidateRead,
    split_valid_candidates,
)
from .responses import BulkWriteAccepted, HealthStatus, WriteAccepted
from .run import Run, RunCreate, RunRead, RunUpdate
from .step import (
    HighRejectionStep,
    RejectionReasonTotal,
    Step,
    StepCreate,
    StepDetail,
    StepRead,
    StepSummary,
    StepSummaryRead,
    StepSummaryUpdate,
)

__all__ = [
    "PLACEHOLDER_MARKER",
    "TERMINAL_RUN_STATUSES",
    "BaseSchema",
    "BulkWriteAccepted",
    # Candidate
    "Candidate",
    "CandidateBulkCreate",
    "CandidateCreate",
    "CandidateEntry",
    "CandidateRead",
    "Decision",
    "HealthStatus",
    # Step
    "HighRejectionStep",
    "Identifier",
    "OpaqueValue",
    "RejectionReasonTotal",
    # Run
    "Run",
    "RunCreate",
    "RunRead",
    "RunStatus",
    "RunUpdate",
    "Step",
    "StepCreate",
    "StepDetail",
    "StepRead",
    "StepSummary",
    "StepSummaryRead",
    "StepSummaryUpdate",
    "StepType",
    "WriteAccepted",
    "as_utc",
    "split_valid_candidates",
    "utcnow",
]
