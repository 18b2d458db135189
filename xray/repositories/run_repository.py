"""Repository for Run-specific database operations."""

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import ColumnElement, and_, case, func, literal, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from xray.exceptions.domain import RunNotFoundError
from xray.models import (
    PLACEHOLDER_MARKER,
    TERMINAL_RUN_STATUSES,
    Run,
    RunCreate,
    RunStatus,
    as_utc,
    utcnow,
)
from xray.repositories.base import BaseRepository
from xray.utils.logger import logger

UNKNOWN_PIPELINE = "unknown"


class RunRepository(BaseRepository[Run]):
    """Repository for Run model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize run repository with session."""
        super().__init__(session, Run)

    def _status_guard(self, new_status: ColumnElement) -> ColumnElement:
        """Status expression that never moves a terminal run back to running."""
        runs = self.table.c
        return case(
            (
                and_(
                    runs.status.in_(list(TERMINAL_RUN_STATUSES)),
                    new_status == RunStatus.running,
                ),
                runs.status,
            ),
            else_=new_status,
        )

    async def upsert_run(self, run: RunCreate) -> None:
        """Insert a run or merge a repeated ``create-run`` event into it.

        Pipeline, input and started_at from the first authoritative write
        are kept; a placeholder row takes them from this event instead.
        ``ended_at`` is only overwritten by a non-null value.

        Args:
            run: Validated run payload.
        """
        runs = self.table.c
        stmt = self.insert().values(
            run_id=run.run_id,
            pipeline=run.pipeline,
            input=run.input,
            started_at=as_utc(run.started_at),
            ended_at=as_utc(run.ended_at) if run.ended_at else None,
            status=run.status,
            placeholder=False,
            created_at=utcnow(),
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[runs.run_id],
            set_={
                "pipeline": case((runs.placeholder, excluded.pipeline), else_=runs.pipeline),
                "input": case((runs.placeholder, excluded.input), else_=runs.input),
                "started_at": case(
                    (runs.placeholder, excluded.started_at), else_=runs.started_at
                ),
                "ended_at": func.coalesce(excluded.ended_at, runs.ended_at),
                "status": self._status_guard(excluded.status),
                "placeholder": False,
            },
        )
        await self.execute_upsert(stmt, f"run '{run.run_id}'")
        logger.debug(f"Upserted run {run.run_id}")

    async def ensure_run_exists(self, run_id: str, pipeline_hint: str | None = None) -> None:
        """Create a placeholder run unless one with this ID already exists.

        Failures are logged and never propagated; the caller's own write
        surfaces any real problem.

        Args:
            run_id: Run ID referenced by a child event.
            pipeline_hint: Pipeline name carried by the child event, if any.
        """
        stmt = (
            self.insert()
            .values(
                run_id=run_id,
                pipeline=pipeline_hint or UNKNOWN_PIPELINE,
                input=dict(PLACEHOLDER_MARKER),
                started_at=utcnow(),
                status=RunStatus.running,
                placeholder=True,
                created_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=[self.table.c.run_id])
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning(f"Could not ensure run {run_id} exists: {e}")

    async def end_run(
        self,
        run_id: str,
        ended_at: datetime | None = None,
        status: RunStatus | None = None,
    ) -> None:
        """Apply an ``update-run`` event.

        Args:
            run_id: Run to end.
            ended_at: End timestamp, left untouched when None.
            status: New status, left untouched when None.
        """
        if ended_at is None and status is None:
            logger.debug(f"Ignoring empty update for run {run_id}")
            return

        await self.ensure_run_exists(run_id)

        runs = self.table.c
        values = {}
        if ended_at is not None:
            values["ended_at"] = as_utc(ended_at)
        if status is not None:
            values["status"] = self._status_guard(literal(status, runs.status.type))

        stmt = update(self.table).where(runs.run_id == run_id).values(**values)
        await self.execute_upsert(stmt, f"run '{run_id}'")
        logger.debug(f"Ended run {run_id} with status {status}")

    async def get(self, run_id: str) -> Run:
        """Get run by ID.

        Raises:
            RunNotFoundError: If the run doesn't exist
        """
        run = await self.get_optional(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    async def list_runs(
        self,
        pipeline: str | None = None,
        status: RunStatus | None = None,
        limit: int = 100,
    ) -> Sequence[Run]:
        """List runs, most recently started first.

        Args:
            pipeline: Only runs of this pipeline
            status: Only runs with this status
            limit: Maximum number of runs

        Returns:
            Matching runs
        """
        statement = select(Run)
        if pipeline is not None:
            statement = statement.where(Run.pipeline == pipeline)
        if status is not None:
            statement = statement.where(Run.status == status)
        statement = statement.order_by(col(Run.started_at).desc(), col(Run.run_id)).limit(limit)
        result = await self.session.execute(statement)
        return result.scalars().all()
