"""
Job types, payload models and queue routing.

Every write event becomes one job. Its payload is validated against the
model registered for its type both when it is enqueued and again when a
worker picks it up.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field as PydanticField
from pydantic import ValidationError as PydanticValidationError

from xray.exceptions import InvalidJobPayloadError, UnknownJobTypeError
from xray.models import (
    BaseSchema,
    CandidateEntry,
    Identifier,
    RunCreate,
    RunUpdate,
    StepCreate,
    StepSummaryUpdate,
)

# Queue names; the routing key is the suffix after the last dot
RUNS_QUEUE = "xray.runs"
STEPS_QUEUE = "xray.steps"
CANDIDATES_QUEUE = "xray.candidates"
DLQ_QUEUE = "xray.dead_letter"

ALL_QUEUES = [RUNS_QUEUE, STEPS_QUEUE, CANDIDATES_QUEUE]


class JobType(str, Enum):
    """Write events accepted by the service."""

    CREATE_RUN = "create-run"
    UPDATE_RUN = "update-run"
    CREATE_STEP = "create-step"
    UPDATE_STEP_SUMMARY = "update-step-summary"
    CREATE_CANDIDATE = "create-candidate"
    CREATE_CANDIDATES_BULK = "create-candidates-bulk"


class UpdateRunJob(RunUpdate):
    run_id: Identifier


class UpdateStepSummaryJob(StepSummaryUpdate):
    step_id: Identifier


class CreateCandidateJob(CandidateEntry):
    step_id: Identifier
    run_id: Identifier | None = None


class CreateCandidatesBulkJob(BaseSchema):
    """Bulk candidates of one step.

    Entries stay raw here; workers validate them one by one and discard
    malformed ones.
    """

    step_id: Identifier
    run_id: Identifier | None = None
    candidates: list[Any] = PydanticField(default_factory=list)


JOB_PAYLOADS: dict[JobType, type[BaseModel]] = {
    JobType.CREATE_RUN: RunCreate,
    JobType.UPDATE_RUN: UpdateRunJob,
    JobType.CREATE_STEP: StepCreate,
    JobType.UPDATE_STEP_SUMMARY: UpdateStepSummaryJob,
    JobType.CREATE_CANDIDATE: CreateCandidateJob,
    JobType.CREATE_CANDIDATES_BULK: CreateCandidatesBulkJob,
}

JOB_QUEUES: dict[JobType, str] = {
    JobType.CREATE_RUN: RUNS_QUEUE,
    JobType.UPDATE_RUN: RUNS_QUEUE,
    JobType.CREATE_STEP: STEPS_QUEUE,
    JobType.UPDATE_STEP_SUMMARY: STEPS_QUEUE,
    JobType.CREATE_CANDIDATE: CANDIDATES_QUEUE,
    JobType.CREATE_CANDIDATES_BULK: CANDIDATES_QUEUE,
}


def extract_routing_key(queue_name: str) -> str:
    """Routing key a queue is bound with: ``xray.runs`` -> ``runs``."""
    return queue_name.rsplit(".", maxsplit=1)[-1]


def parse_job_type(job_type: str | JobType) -> JobType:
    """Resolve a job type name.

    Raises:
        UnknownJobTypeError: If the name is not a known job type.
    """
    try:
        return JobType(job_type)
    except ValueError as e:
        raise UnknownJobTypeError(str(job_type)) from e


def validate_payload(job_type: JobType, payload: BaseModel | dict[str, Any]) -> BaseModel:
    """Validate a payload against the model registered for ``job_type``.

    Args:
        job_type: Job type.
        payload: Model instance or raw mapping.

    Returns:
        Validated payload model.

    Raises:
        InvalidJobPayloadError: If the payload does not match.
    """
    model = JOB_PAYLOADS[job_type]
    if isinstance(payload, model):
        return payload
    data = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else payload
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidJobPayloadError(job_type.value, str(e)) from e
