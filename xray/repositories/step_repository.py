"""Repository for Step and StepSummary database operations."""

from collections.abc import Sequence

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from xray.exceptions.domain import StepNotFoundError
from xray.models import (
    PLACEHOLDER_MARKER,
    Step,
    StepCreate,
    StepSummary,
    StepType,
    utcnow,
)
from xray.repositories.base import BaseRepository
from xray.utils.logger import logger

PLACEHOLDER_STEP_NAME = "auto-created"


class StepRepository(BaseRepository[Step]):
    """Repository for Step model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize step repository with session."""
        super().__init__(session, Step)

    async def upsert_step(self, step: StepCreate) -> None:
        """Insert a step or overwrite its descriptive fields.

        Counts are never reset to null by a repeated event.

        Args:
            step: Validated step payload.

        Raises:
            DatabaseIntegrityError: If the parent run does not exist.
        """
        steps = self.table.c
        stmt = self.insert().values(
            {
                "step_id": step.step_id,
                "run_id": step.run_id,
                "name": step.name,
                "type": step.type,
                "metadata": step.metadata,
                "placeholder": False,
                "created_at": utcnow(),
            }
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[steps.step_id],
            set_={
                "run_id": excluded.run_id,
                "name": excluded.name,
                "type": excluded.type,
                "metadata": excluded["metadata"],
                "input_count": func.coalesce(excluded.input_count, steps.input_count),
                "output_count": func.coalesce(excluded.output_count, steps.output_count),
                "placeholder": False,
            },
        )
        await self.execute_upsert(stmt, f"step '{step.step_id}'")
        logger.debug(f"Upserted step {step.step_id} of run {step.run_id}")

    async def ensure_step_exists(self, step_id: str, run_id: str) -> None:
        """Create a placeholder step unless one with this ID already exists.

        A missing parent run is expected while events race and is ignored;
        the dependent write then fails and is retried.

        Args:
            step_id: Step ID referenced by a child event.
            run_id: Run the step belongs to.
        """
        stmt = (
            self.insert()
            .values(
                {
                    "step_id": step_id,
                    "run_id": run_id,
                    "name": PLACEHOLDER_STEP_NAME,
                    "type": StepType.generate,
                    "metadata": dict(PLACEHOLDER_MARKER),
                    "placeholder": True,
                    "created_at": utcnow(),
                }
            )
            .on_conflict_do_nothing(index_elements=[self.table.c.step_id])
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.debug(f"Placeholder step {step_id} skipped, run {run_id} missing: {e.orig}")
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning(f"Could not ensure step {step_id} exists: {e}")

    async def upsert_step_summary(
        self,
        step_id: str,
        rejected: int,
        accepted: int,
        rejection_breakdown: dict[str, int],
        input_count: int | None = None,
        output_count: int | None = None,
    ) -> None:
        """Replace the summary of a step and record its counts.

        Both writes share one transaction.

        Args:
            step_id: Step the summary belongs to.
            rejected: Computed rejected count.
            accepted: Computed accepted count.
            rejection_breakdown: Reason to count mapping, stored verbatim.
            input_count: Step input count, kept when None.
            output_count: Step output count, kept when None.

        Raises:
            DatabaseIntegrityError: If the step does not exist.
        """
        summaries = StepSummary.__table__.c  # type: ignore[attr-defined]
        stmt = self.insert(StepSummary.__table__).values(  # type: ignore[attr-defined]
            step_id=step_id,
            rejected=rejected,
            accepted=accepted,
            rejection_breakdown=rejection_breakdown,
            updated_at=utcnow(),
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[summaries.step_id],
            set_={
                "rejected": excluded.rejected,
                "accepted": excluded.accepted,
                "rejection_breakdown": excluded.rejection_breakdown,
                "updated_at": excluded.updated_at,
            },
        )

        counts = {}
        if input_count is not None:
            counts["input_count"] = input_count
        if output_count is not None:
            counts["output_count"] = output_count

        statements = [stmt]
        if counts:
            statements.append(
                update(self.table).where(self.table.c.step_id == step_id).values(**counts)
            )
        await self.execute_in_transaction(statements, f"summary of step '{step_id}'")
        logger.debug(f"Replaced summary of step {step_id}: accepted={accepted} rejected={rejected}")

    async def get(self, step_id: str) -> Step:
        """Get step by ID.

        Raises:
            StepNotFoundError: If the step doesn't exist
        """
        step = await self.get_optional(step_id)
        if step is None:
            raise StepNotFoundError(step_id)
        return step

    async def get_summary(self, step_id: str) -> StepSummary | None:
        """Get the current summary of a step, if one was recorded."""
        return await self.session.get(StepSummary, step_id, populate_existing=True)

    async def list_steps(
        self,
        run_id: str | None = None,
        step_type: StepType | None = None,
        name: str | None = None,
        limit: int = 500,
    ) -> Sequence[Step]:
        """List steps in creation order.

        Args:
            run_id: Only steps of this run
            step_type: Only steps of this semantic type
            name: Only steps with this name
            limit: Maximum number of steps

        Returns:
            Matching steps
        """
        statement = select(Step)
        if run_id is not None:
            statement = statement.where(Step.run_id == run_id)
        if step_type is not None:
            statement = statement.where(Step.type == step_type)
        if name is not None:
            statement = statement.where(Step.name == name)
        statement = statement.order_by(col(Step.created_at), col(Step.step_id)).limit(limit)
        result = await self.session.execute(statement)
        return result.scalars().all()
