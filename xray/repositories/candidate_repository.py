"""Repository for Candidate database operations."""

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from xray.models import Candidate, CandidateEntry, Decision, utcnow
from xray.repositories.base import BaseRepository
from xray.utils.logger import logger

# Rows per INSERT statement, below SQLite's bound parameter limit
BULK_CHUNK_SIZE = 500


class CandidateRepository(BaseRepository[Candidate]):
    """Repository for Candidate model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize candidate repository with session."""
        super().__init__(session, Candidate)

    def _upsert_statement(self, rows: list[dict]):
        candidates = self.table.c
        stmt = self.insert().values(rows)
        excluded = stmt.excluded
        return stmt.on_conflict_do_update(
            index_elements=[candidates.candidate_id, candidates.step_id],
            set_={
                "decision": excluded.decision,
                "score": excluded.score,
                "reason": excluded.reason,
            },
        )

    @staticmethod
    def _row(step_id: str, entry: CandidateEntry) -> dict:
        return {
            "candidate_id": entry.candidate_id,
            "step_id": step_id,
            "decision": entry.decision,
            "score": entry.score,
            "reason": entry.reason,
            "created_at": utcnow(),
        }

    async def upsert_candidate(self, step_id: str, entry: CandidateEntry) -> None:
        """Insert a candidate decision or replace the stored one.

        Args:
            step_id: Step the candidate was evaluated at.
            entry: Validated candidate entry.

        Raises:
            DatabaseIntegrityError: If the step does not exist.
        """
        stmt = self._upsert_statement([self._row(step_id, entry)])
        await self.execute_upsert(stmt, f"candidate '{entry.candidate_id}'")
        logger.debug(f"Upserted candidate {entry.candidate_id} of step {step_id}")

    async def upsert_candidates_bulk(self, step_id: str, entries: list[CandidateEntry]) -> int:
        """Insert or replace many candidates of one step atomically.

        Entries repeating a candidate ID collapse to the last one, as if they
        had been written one after another.

        Args:
            step_id: Step the candidates were evaluated at.
            entries: Validated candidate entries.

        Returns:
            Number of distinct candidates written.

        Raises:
            DatabaseIntegrityError: If the step does not exist. Nothing is
                written in that case.
        """
        rows = {entry.candidate_id: self._row(step_id, entry) for entry in entries}
        if not rows:
            return 0

        ordered = list(rows.values())
        statements = [
            self._upsert_statement(ordered[start : start + BULK_CHUNK_SIZE])
            for start in range(0, len(ordered), BULK_CHUNK_SIZE)
        ]
        await self.execute_in_transaction(statements, f"candidates of step '{step_id}'")
        logger.debug(f"Upserted {len(ordered)} candidates of step {step_id}")
        return len(ordered)

    async def list_by_step(
        self, step_id: str, decision: Decision | None = None
    ) -> Sequence[Candidate]:
        """List candidates recorded for a step.

        Args:
            step_id: Step ID
            decision: Only candidates with this decision

        Returns:
            Candidates ordered by ID
        """
        statement = select(Candidate).where(Candidate.step_id == step_id)
        if decision is not None:
            statement = statement.where(Candidate.decision == decision)
        statement = statement.order_by(col(Candidate.candidate_id))
        result = await self.session.execute(statement)
        return result.scalars().all()
