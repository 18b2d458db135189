"""
Step router: step, summary and candidate events, step reads and the
cross-pipeline queries.
"""

from fastapi import APIRouter, Query, status

from xray.api.dependencies import (
    CandidateRepositoryDep,
    JobQueueDep,
    QueryEngineDep,
    StepRepositoryDep,
)
from xray.models import (
    BulkWriteAccepted,
    CandidateBulkCreate,
    CandidateCreate,
    CandidateRead,
    Decision,
    HighRejectionStep,
    RejectionReasonTotal,
    StepCreate,
    StepDetail,
    StepRead,
    StepSummaryRead,
    StepSummaryUpdate,
    StepType,
    WriteAccepted,
    split_valid_candidates,
)
from xray.services.query_engine import DEFAULT_REJECTION_THRESHOLD
from xray.services.queue import (
    CreateCandidateJob,
    CreateCandidatesBulkJob,
    JobType,
    UpdateStepSummaryJob,
)
from xray.utils.logger import logger

router = APIRouter(
    tags=["Steps"],
    responses={
        404: {"description": "Not found"},
        503: {"description": "Service temporarily unavailable"},
    },
)


# Write endpoints


@router.post("", response_model=WriteAccepted, status_code=status.HTTP_202_ACCEPTED)
async def create_step(step: StepCreate, job_queue: JobQueueDep) -> WriteAccepted:
    """Queue the creation of a step."""
    job_id = await job_queue.enqueue(JobType.CREATE_STEP, step)
    return WriteAccepted(job_id=job_id)


@router.post(
    "/{step_id}/summary", response_model=WriteAccepted, status_code=status.HTTP_202_ACCEPTED
)
async def update_step_summary(
    step_id: str, summary: StepSummaryUpdate, job_queue: JobQueueDep
) -> WriteAccepted:
    """Queue a complete summary snapshot of a step."""
    job = UpdateStepSummaryJob(step_id=step_id, **summary.model_dump())
    job_id = await job_queue.enqueue(JobType.UPDATE_STEP_SUMMARY, job)
    return WriteAccepted(job_id=job_id)


@router.post(
    "/{step_id}/candidates", response_model=WriteAccepted, status_code=status.HTTP_202_ACCEPTED
)
async def create_candidate(
    step_id: str, candidate: CandidateCreate, job_queue: JobQueueDep
) -> WriteAccepted:
    """Queue one candidate decision."""
    job = CreateCandidateJob(step_id=step_id, **candidate.model_dump())
    job_id = await job_queue.enqueue(JobType.CREATE_CANDIDATE, job)
    return WriteAccepted(job_id=job_id)


@router.post(
    "/{step_id}/candidates/bulk",
    response_model=BulkWriteAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_candidates_bulk(
    step_id: str, bulk: CandidateBulkCreate, job_queue: JobQueueDep
) -> BulkWriteAccepted:
    """Queue many candidate decisions of one step.

    Entries are validated one by one; malformed ones are dropped and
    counted instead of failing the whole batch.
    """
    valid, discarded = split_valid_candidates(bulk.candidates)
    if discarded:
        logger.warning(f"Discarding {len(discarded)} malformed candidate(s) for step {step_id}")
    if not valid:
        return BulkWriteAccepted(job_id=None, accepted=0, discarded=len(discarded))

    job = CreateCandidatesBulkJob(
        step_id=step_id,
        run_id=bulk.run_id,
        candidates=[entry.model_dump(mode="json") for entry in valid],
    )
    job_id = await job_queue.enqueue(JobType.CREATE_CANDIDATES_BULK, job)
    return BulkWriteAccepted(job_id=job_id, accepted=len(valid), discarded=len(discarded))


# Cross-pipeline queries


@router.get("/query/high-rejection", response_model=list[HighRejectionStep])
async def find_high_rejection_steps(
    engine: QueryEngineDep,
    threshold: float = Query(DEFAULT_REJECTION_THRESHOLD, ge=0.0, le=1.0),
    step_type: StepType = Query(StepType.filter, alias="type"),
    pipeline: str | None = None,
    limit: int | None = Query(None, ge=1),
) -> list[HighRejectionStep]:
    """Steps of any pipeline whose rejection rate exceeds ``threshold``."""
    return await engine.find_high_rejection_steps(
        threshold=threshold, step_type=step_type, pipeline=pipeline, limit=limit
    )


@router.get("/query/rejection-reasons", response_model=list[RejectionReasonTotal])
async def top_rejection_reasons(
    engine: QueryEngineDep,
    step_type: StepType = Query(StepType.filter, alias="type"),
    limit: int = Query(10, ge=1, le=100),
) -> list[RejectionReasonTotal]:
    """Most frequent rejection reasons across all pipelines."""
    return await engine.top_rejection_reasons(step_type=step_type, limit=limit)


# Read endpoints


@router.get("", response_model=list[StepRead])
async def list_steps(
    step_repo: StepRepositoryDep,
    run_id: str | None = None,
    step_type: StepType | None = Query(None, alias="type"),
    name: str | None = None,
) -> list[StepRead]:
    """List steps, optionally filtered by run, type or name."""
    steps = await step_repo.list_steps(run_id=run_id, step_type=step_type, name=name)
    return [StepRead.from_entity(step) for step in steps]


@router.get("/{step_id}", response_model=StepDetail)
async def get_step(
    step_id: str,
    step_repo: StepRepositoryDep,
    candidate_repo: CandidateRepositoryDep,
    decision: Decision | None = None,
) -> StepDetail:
    """Get a step with its summary and recorded candidates, optionally of one decision."""
    step = await step_repo.get(step_id)
    summary = await step_repo.get_summary(step_id)
    candidates = await candidate_repo.list_by_step(step_id, decision=decision)
    return StepDetail(
        **StepRead.from_entity(step).model_dump(),
        summary=StepSummaryRead.from_entity(summary) if summary else None,
        candidates=[CandidateRead.model_validate(candidate) for candidate in candidates],
    )
