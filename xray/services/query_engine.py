"""Queries that span every pipeline.

Cross-pipeline questions only rely on the semantic step type and the
stored summaries, never on pipeline specific metadata.
"""

from collections import Counter

from sqlalchemy import Float, cast, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from xray.models import (
    HighRejectionStep,
    RejectionReasonTotal,
    Run,
    Step,
    StepSummary,
    StepType,
)

DEFAULT_REJECTION_THRESHOLD = 0.9


class CrossPipelineQueryEngine:
    """Read-only queries over steps and summaries of all pipelines."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_high_rejection_steps(
        self,
        threshold: float = DEFAULT_REJECTION_THRESHOLD,
        step_type: StepType = StepType.filter,
        pipeline: str | None = None,
        limit: int | None = None,
    ) -> list[HighRejectionStep]:
        """Find steps rejecting more than ``threshold`` of their candidates.

        The rejection rate is ``rejected / (rejected + accepted)``; steps
        without any counted candidate are skipped.

        Args:
            threshold: Exclusive lower bound on the rejection rate
            step_type: Semantic step type to inspect
            pipeline: Only steps of runs of this pipeline
            limit: Maximum number of rows

        Returns:
            Matching steps, highest rejection rate first, ties by step ID
        """
        total = col(StepSummary.rejected) + col(StepSummary.accepted)
        rate = (cast(col(StepSummary.rejected), Float) / func.nullif(total, 0)).label(
            "rejection_rate"
        )

        statement = (
            select(
                col(Step.step_id),
                col(Step.run_id),
                col(Run.pipeline),
                col(Step.name),
                col(Step.type),
                col(Step.step_metadata).label("step_metadata"),
                col(StepSummary.rejected),
                col(StepSummary.accepted),
                rate,
            )
            .select_from(Step)
            .join(StepSummary, col(StepSummary.step_id) == col(Step.step_id))
            .join(Run, col(Run.run_id) == col(Step.run_id))
            .where(col(Step.type) == step_type)
            .where(total > 0)
            .where(rate > threshold)
            .order_by(rate.desc(), col(Step.step_id))
        )
        if pipeline is not None:
            statement = statement.where(col(Run.pipeline) == pipeline)
        if limit is not None:
            statement = statement.limit(limit)

        result = await self.session.execute(statement)
        return [
            HighRejectionStep(
                step_id=row.step_id,
                run_id=row.run_id,
                pipeline=row.pipeline,
                name=row.name,
                type=row.type,
                metadata=row.step_metadata,
                rejected=row.rejected,
                accepted=row.accepted,
                rejection_rate=row.rejection_rate,
            )
            for row in result.all()
        ]

    async def top_rejection_reasons(
        self,
        step_type: StepType = StepType.filter,
        limit: int = 10,
    ) -> list[RejectionReasonTotal]:
        """Aggregate rejection breakdowns of all steps of one type.

        Args:
            step_type: Semantic step type to inspect
            limit: Maximum number of reasons

        Returns:
            Reasons ordered by total count, then by name
        """
        statement = (
            select(col(StepSummary.rejection_breakdown))
            .join(Step, col(Step.step_id) == col(StepSummary.step_id))
            .where(col(Step.type) == step_type)
        )
        result = await self.session.execute(statement)

        totals: Counter[str] = Counter()
        step_counts: Counter[str] = Counter()
        for breakdown in result.scalars():
            if not isinstance(breakdown, dict):
                continue
            for reason, count in breakdown.items():
                if isinstance(count, int) and count > 0:
                    totals[reason] += count
                    step_counts[reason] += 1

        ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [
            RejectionReasonTotal(reason=reason, count=count, step_count=step_counts[reason])
            for reason, count in ranked
        ]
