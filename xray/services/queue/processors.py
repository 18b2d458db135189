"""
Job processors: apply one dequeued job to the store.

Processors run inside workers. Each job gets its own session; failures
propagate so the retry middleware can reschedule the job.
"""

from typing import Any

from pydantic import BaseModel

from xray.models import RunCreate, StepCreate, split_valid_candidates
from xray.services.trace_writer import TraceWriter
from xray.utils.db_manager import DatabaseManager
from xray.utils.logger import logger

from .jobs import (
    CreateCandidateJob,
    CreateCandidatesBulkJob,
    JobType,
    UpdateRunJob,
    UpdateStepSummaryJob,
    parse_job_type,
    validate_payload,
)


async def _create_run(writer: TraceWriter, job: RunCreate) -> dict[str, Any]:
    await writer.upsert_run(job)
    return {"run_id": job.run_id}


async def _update_run(writer: TraceWriter, job: UpdateRunJob) -> dict[str, Any]:
    await writer.end_run(job.run_id, job)
    return {"run_id": job.run_id}


async def _create_step(writer: TraceWriter, job: StepCreate) -> dict[str, Any]:
    await writer.ensure_run_exists(job.run_id, job.pipeline)
    await writer.upsert_step(job)
    return {"step_id": job.step_id}


async def _update_step_summary(writer: TraceWriter, job: UpdateStepSummaryJob) -> dict[str, Any]:
    if job.run_id:
        await writer.ensure_step_exists(job.step_id, job.run_id)
    counts = await writer.upsert_step_summary(job.step_id, job)
    return {"step_id": job.step_id, "rejected": counts.rejected, "accepted": counts.accepted}


async def _create_candidate(writer: TraceWriter, job: CreateCandidateJob) -> dict[str, Any]:
    if job.run_id:
        await writer.ensure_step_exists(job.step_id, job.run_id)
    await writer.upsert_candidate(job.step_id, job)
    return {"step_id": job.step_id, "candidate_id": job.candidate_id}


async def _create_candidates_bulk(
    writer: TraceWriter, job: CreateCandidatesBulkJob
) -> dict[str, Any]:
    valid, discarded = split_valid_candidates(job.candidates)
    if discarded:
        logger.warning(
            f"Discarded {len(discarded)} malformed candidate(s) for step {job.step_id}"
        )
    if not valid:
        logger.info(f"No valid candidates for step {job.step_id}, nothing to write")
        return {"step_id": job.step_id, "written": 0, "discarded": len(discarded)}

    if job.run_id:
        await writer.ensure_step_exists(job.step_id, job.run_id)
    written = await writer.upsert_candidates_bulk(job.step_id, valid)
    return {"step_id": job.step_id, "written": written, "discarded": len(discarded)}


_PROCESSORS = {
    JobType.CREATE_RUN: _create_run,
    JobType.UPDATE_RUN: _update_run,
    JobType.CREATE_STEP: _create_step,
    JobType.UPDATE_STEP_SUMMARY: _update_step_summary,
    JobType.CREATE_CANDIDATE: _create_candidate,
    JobType.CREATE_CANDIDATES_BULK: _create_candidates_bulk,
}


async def process_job(
    db_manager: DatabaseManager,
    job_type: str | JobType,
    payload: BaseModel | dict[str, Any],
) -> dict[str, Any]:
    """Validate a job and apply it through the trace writer.

    Args:
        db_manager: Database manager owned by the worker.
        job_type: Job type name.
        payload: Job payload.

    Returns:
        Short description of what was written.

    Raises:
        UnknownJobTypeError: For unknown job types.
        InvalidJobPayloadError: If the payload does not match its job type.
        DatabaseIntegrityError: If a parent row is still missing.
    """
    resolved = parse_job_type(job_type)
    job = validate_payload(resolved, payload)

    async with db_manager.get_async_session_context() as session:
        result = await _PROCESSORS[resolved](TraceWriter(session), job)  # type: ignore[operator]

    logger.debug(f"Processed {resolved.value} job: {result}")
    return result
