"""Idempotent write protocol for decision trail events.

Every operation may be applied any number of times, in any order relative
to the others, and still converges on the same stored state. Parent rows
missing because their own event has not been processed yet are created as
placeholders and upgraded once the authoritative event arrives.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from xray.models import (
    CandidateEntry,
    RunCreate,
    RunUpdate,
    StepCreate,
    StepSummaryUpdate,
)
from xray.repositories import CandidateRepository, RunRepository, StepRepository


@dataclass(frozen=True)
class SummaryCounts:
    """Accepted/rejected totals derived from a step summary event."""

    rejected: int
    accepted: int


def compute_summary(
    input_count: int | None,
    output_count: int | None,
    rejection_breakdown: dict[str, int] | None,
) -> SummaryCounts:
    """Derive summary counts from the counts a pipeline reported.

    ``accepted`` is the step output. ``rejected`` is the breakdown total when
    reasons were reported, otherwise whatever the step dropped. An empty
    breakdown counts as no breakdown.

    Args:
        input_count: Candidates entering the step
        output_count: Candidates leaving the step
        rejection_breakdown: Rejection reason to count mapping

    Returns:
        SummaryCounts with non-negative totals
    """
    accepted = output_count or 0
    if rejection_breakdown:
        rejected = sum(rejection_breakdown.values())
    else:
        rejected = max(0, (input_count or 0) - accepted)
    return SummaryCounts(rejected=rejected, accepted=accepted)


class TraceWriter:
    """Applies decision trail events to the store."""

    def __init__(self, session: AsyncSession):
        """Initialize trace writer with a session.

        Args:
            session: Database session owned by the caller
        """
        self.run_repo = RunRepository(session)
        self.step_repo = StepRepository(session)
        self.candidate_repo = CandidateRepository(session)

    # Run operations

    async def upsert_run(self, run: RunCreate) -> None:
        await self.run_repo.upsert_run(run)

    async def ensure_run_exists(self, run_id: str, pipeline_hint: str | None = None) -> None:
        await self.run_repo.ensure_run_exists(run_id, pipeline_hint)

    async def end_run(self, run_id: str, update: RunUpdate) -> None:
        await self.run_repo.end_run(run_id, ended_at=update.ended_at, status=update.status)

    # Step operations

    async def upsert_step(self, step: StepCreate) -> None:
        """Create or update a step.

        Raises:
            DatabaseIntegrityError: If the parent run does not exist
        """
        await self.step_repo.upsert_step(step)

    async def ensure_step_exists(self, step_id: str, run_id: str) -> None:
        await self.step_repo.ensure_step_exists(step_id, run_id)

    async def upsert_step_summary(self, step_id: str, update: StepSummaryUpdate) -> SummaryCounts:
        """Replace the summary of a step.

        Args:
            step_id: Step the summary belongs to
            update: Complete summary snapshot

        Returns:
            The stored counts

        Raises:
            DatabaseIntegrityError: If the step does not exist
        """
        counts = compute_summary(
            update.input_count, update.output_count, update.rejection_breakdown
        )
        await self.step_repo.upsert_step_summary(
            step_id,
            rejected=counts.rejected,
            accepted=counts.accepted,
            rejection_breakdown=update.rejection_breakdown or {},
            input_count=update.input_count,
            output_count=update.output_count,
        )
        return counts

    # Candidate operations

    async def upsert_candidate(self, step_id: str, candidate: CandidateEntry) -> None:
        await self.candidate_repo.upsert_candidate(step_id, candidate)

    async def upsert_candidates_bulk(
        self,
        step_id: str,
        candidates: list[CandidateEntry],
    ) -> int:
        """Write a batch of candidates of one step in a single transaction.

        Args:
            step_id: Step the candidates were evaluated at
            candidates: Already validated entries

        Returns:
            Number of distinct candidates written, 0 for an empty batch
        """
        if not candidates:
            return 0
        return await self.candidate_repo.upsert_candidates_bulk(step_id, candidates)
