"""Tests for the idempotent write protocol against an in-memory SQLite store."""

from datetime import UTC, datetime

import pytest
import pytest_asyncio

from tests.factories import STARTED_AT, make_run, make_step
from xray.exceptions import DatabaseIntegrityError, RunNotFoundError
from xray.models import (
    PLACEHOLDER_MARKER,
    CandidateEntry,
    Decision,
    RunStatus,
    RunUpdate,
    StepSummaryUpdate,
    StepType,
)
from xray.repositories import CandidateRepository, RunRepository, StepRepository

pytestmark = pytest.mark.asyncio

ENDED_AT = datetime(2024, 5, 1, 12, 5, tzinfo=UTC)


# ─── Runs ───────────────────────────────────────────────────────────────────


class TestUpsertRun:
    """upsert_run / ensure_run_exists / end_run."""

    async def test_create_run(self, writer, test_session):
        """A new run is stored with the given fields."""
        await writer.upsert_run(make_run())

        run = await RunRepository(test_session).get("run-1")
        assert run.pipeline == "competitor-selection"
        assert run.input == {"product": "phone case"}
        assert run.status == RunStatus.running
        assert run.placeholder is False

    async def test_blank_input_stored_verbatim(self, writer, test_session):
        """Whitespace input and empty metadata are stored as sent, not as null."""
        await writer.upsert_run(make_run(input="  "))
        await writer.upsert_step(make_step(metadata=""))

        run = await RunRepository(test_session).get("run-1")
        step = await StepRepository(test_session).get("step-1")
        assert run.input == "  "
        assert step.step_metadata == ""

    async def test_duplicate_create_is_idempotent(self, writer, test_session):
        """Applying the same event twice leaves one identical row."""
        await writer.upsert_run(make_run())
        await writer.upsert_run(make_run())

        assert await RunRepository(test_session).count() == 1
        run = await RunRepository(test_session).get("run-1")
        assert run.pipeline == "competitor-selection"

    async def test_repeated_create_keeps_first_pipeline(self, writer, test_session):
        """Pipeline and input of the first authoritative write are kept."""
        await writer.upsert_run(make_run())
        await writer.upsert_run(make_run(pipeline="other", input={"x": 1}))

        run = await RunRepository(test_session).get("run-1")
        assert run.pipeline == "competitor-selection"
        assert run.input == {"product": "phone case"}

    async def test_ended_at_not_cleared_by_null(self, writer, test_session):
        """A later event without ended_at keeps the stored value."""
        await writer.upsert_run(make_run(ended_at=ENDED_AT, status=RunStatus.success))
        await writer.upsert_run(make_run())

        run = await RunRepository(test_session).get("run-1")
        assert run.ended_at is not None
        assert run.ended_at.replace(tzinfo=None) == ENDED_AT.replace(tzinfo=None)

    async def test_terminal_status_not_regressed(self, writer, test_session):
        """A late create-run with status running does not reopen an ended run."""
        await writer.end_run("run-1", RunUpdate(ended_at=ENDED_AT, status=RunStatus.success))
        await writer.upsert_run(make_run())

        run = await RunRepository(test_session).get("run-1")
        assert run.status == RunStatus.success

    async def test_terminal_status_can_change_to_other_terminal(self, writer, test_session):
        """Success can still be corrected to error."""
        await writer.upsert_run(make_run(status=RunStatus.success))
        await writer.end_run("run-1", RunUpdate(status=RunStatus.error))

        run = await RunRepository(test_session).get("run-1")
        assert run.status == RunStatus.error

    async def test_ensure_run_exists_creates_placeholder(self, writer, test_session):
        """A placeholder run carries the pipeline hint and marker input."""
        await writer.ensure_run_exists("run-9", "hinted")

        run = await RunRepository(test_session).get("run-9")
        assert run.placeholder is True
        assert run.pipeline == "hinted"
        assert run.input == PLACEHOLDER_MARKER
        assert run.status == RunStatus.running

    async def test_ensure_run_exists_without_hint(self, writer, test_session):
        """Without a hint the pipeline is 'unknown'."""
        await writer.ensure_run_exists("run-9")

        run = await RunRepository(test_session).get("run-9")
        assert run.pipeline == "unknown"

    async def test_ensure_run_exists_keeps_real_run(self, writer, test_session):
        """The placeholder guard never overwrites an existing run."""
        await writer.upsert_run(make_run())
        await writer.ensure_run_exists("run-1", "hinted")

        run = await RunRepository(test_session).get("run-1")
        assert run.pipeline == "competitor-selection"
        assert run.placeholder is False

    async def test_placeholder_upgraded_by_create(self, writer, test_session):
        """The authoritative event replaces placeholder data."""
        await writer.ensure_run_exists("run-1")
        await writer.upsert_run(make_run())

        run = await RunRepository(test_session).get("run-1")
        assert run.placeholder is False
        assert run.pipeline == "competitor-selection"
        assert run.input == {"product": "phone case"}
        assert run.started_at.replace(tzinfo=None) == STARTED_AT.replace(tzinfo=None)

    async def test_end_run_before_create(self, writer, test_session):
        """Ending an unknown run creates a placeholder, upgraded later."""
        await writer.end_run("run-1", RunUpdate(ended_at=ENDED_AT, status=RunStatus.error))
        await writer.upsert_run(make_run())

        run = await RunRepository(test_session).get("run-1")
        assert run.status == RunStatus.error
        assert run.ended_at is not None
        assert run.pipeline == "competitor-selection"

    async def test_empty_end_run_is_noop(self, writer, test_session):
        """An update without fields writes nothing."""
        await writer.end_run("run-1", RunUpdate())

        with pytest.raises(RunNotFoundError):
            await RunRepository(test_session).get("run-1")


# ─── Steps ──────────────────────────────────────────────────────────────────


class TestUpsertStep:
    """upsert_step / ensure_step_exists."""

    async def test_step_requires_run(self, writer):
        """A step whose run does not exist is an integrity error."""
        with pytest.raises(DatabaseIntegrityError):
            await writer.upsert_step(make_step())

    async def test_create_step(self, writer, test_session):
        """A step is stored under its run."""
        await writer.upsert_run(make_run())
        await writer.upsert_step(make_step())

        step = await StepRepository(test_session).get("step-1")
        assert step.run_id == "run-1"
        assert step.type == StepType.filter
        assert step.step_metadata == {"max_price": 30}

    async def test_repeated_step_overwrites_fields(self, writer, test_session):
        """Name, type and metadata follow the latest event."""
        await writer.upsert_run(make_run())
        await writer.upsert_step(make_step())
        await writer.upsert_step(
            make_step(name="relevance", step_type=StepType.rank, metadata={"model": "v2"})
        )

        step = await StepRepository(test_session).get("step-1")
        assert step.name == "relevance"
        assert step.type == StepType.rank
        assert step.step_metadata == {"model": "v2"}

    async def test_repeated_step_keeps_counts(self, writer, test_session):
        """Counts recorded by a summary survive a repeated create-step."""
        await writer.upsert_run(make_run())
        await writer.upsert_step(make_step())
        await writer.upsert_step_summary(
            "step-1", StepSummaryUpdate(input_count=10, output_count=4)
        )
        await writer.upsert_step(make_step())

        step = await StepRepository(test_session).get("step-1")
        assert step.input_count == 10
        assert step.output_count == 4

    async def test_ensure_step_exists_creates_placeholder(self, writer, test_session):
        """The placeholder step is a generate step named auto-created."""
        await writer.upsert_run(make_run())
        await writer.ensure_step_exists("step-1", "run-1")

        step = await StepRepository(test_session).get("step-1")
        assert step.placeholder is True
        assert step.name == "auto-created"
        assert step.type == StepType.generate
        assert step.step_metadata == PLACEHOLDER_MARKER

    async def test_ensure_step_exists_swallows_missing_run(self, writer, test_session):
        """A missing parent run is ignored, nothing is written."""
        await writer.ensure_step_exists("step-1", "run-404")

        assert await StepRepository(test_session).count() == 0

    async def test_placeholder_step_upgraded(self, writer, test_session):
        """The real create-step replaces the placeholder."""
        await writer.upsert_run(make_run())
        await writer.ensure_step_exists("step-1", "run-1")
        await writer.upsert_step(make_step())

        step = await StepRepository(test_session).get("step-1")
        assert step.placeholder is False
        assert step.name == "price_filter"
        assert step.type == StepType.filter


# ─── Summaries ──────────────────────────────────────────────────────────────


class TestStepSummary:
    """upsert_step_summary."""

    @pytest_asyncio.fixture(autouse=True)
    async def _step(self, writer):
        await writer.upsert_run(make_run())
        await writer.upsert_step(make_step())

    async def test_summary_with_breakdown(self, writer, test_session):
        """Rejected is the breakdown total, accepted the output count."""
        counts = await writer.upsert_step_summary(
            "step-1",
            StepSummaryUpdate(
                input_count=100,
                output_count=8,
                rejection_breakdown={"too_expensive": 60, "low_rating": 30},
            ),
        )

        assert (counts.rejected, counts.accepted) == (90, 8)
        summary = await StepRepository(test_session).get_summary("step-1")
        assert summary.rejected == 90
        assert summary.accepted == 8
        assert summary.rejection_breakdown == {"too_expensive": 60, "low_rating": 30}

    async def test_summary_fallback_without_breakdown(self, writer, test_session):
        """Without reasons, rejected is input minus output."""
        await writer.upsert_step_summary(
            "step-1", StepSummaryUpdate(input_count=100, output_count=15)
        )

        summary = await StepRepository(test_session).get_summary("step-1")
        assert summary.rejected == 85
        assert summary.accepted == 15
        assert summary.rejection_breakdown == {}

    async def test_summary_replaced_not_merged(self, writer, test_session):
        """A later snapshot replaces the earlier one entirely."""
        await writer.upsert_step_summary(
            "step-1",
            StepSummaryUpdate(
                input_count=10, output_count=2, rejection_breakdown={"a": 5, "b": 3}
            ),
        )
        await writer.upsert_step_summary(
            "step-1",
            StepSummaryUpdate(input_count=10, output_count=6, rejection_breakdown={"c": 4}),
        )

        summary = await StepRepository(test_session).get_summary("step-1")
        assert summary.rejected == 4
        assert summary.accepted == 6
        assert summary.rejection_breakdown == {"c": 4}

    async def test_summary_updates_step_counts(self, writer, test_session):
        """Counts given with the summary land on the step."""
        await writer.upsert_step_summary(
            "step-1", StepSummaryUpdate(input_count=50, output_count=5)
        )

        step = await StepRepository(test_session).get("step-1")
        assert step.input_count == 50
        assert step.output_count == 5

    async def test_summary_for_missing_step(self, writer):
        """A summary of an unknown step is an integrity error."""
        with pytest.raises(DatabaseIntegrityError):
            await writer.upsert_step_summary(
                "step-404", StepSummaryUpdate(input_count=1, output_count=1)
            )


# ─── Candidates ─────────────────────────────────────────────────────────────


class TestCandidates:
    """upsert_candidate / upsert_candidates_bulk."""

    @pytest_asyncio.fixture(autouse=True)
    async def _step(self, writer):
        await writer.upsert_run(make_run())
        await writer.upsert_step(make_step())

    async def test_candidate_replaced_by_key(self, writer, test_session):
        """Writing the same (candidate, step) twice keeps the last decision."""
        await writer.upsert_candidate(
            "step-1", CandidateEntry(candidate_id="c1", decision=Decision.accepted, score=0.9)
        )
        await writer.upsert_candidate(
            "step-1",
            CandidateEntry(candidate_id="c1", decision=Decision.rejected, reason="too_expensive"),
        )

        candidates = await CandidateRepository(test_session).list_by_step("step-1")
        assert len(candidates) == 1
        assert candidates[0].decision == Decision.rejected
        assert candidates[0].reason == "too_expensive"
        assert candidates[0].score is None

    async def test_same_candidate_in_two_steps(self, writer, test_session):
        """Candidate IDs are only unique within a step."""
        await writer.upsert_step(make_step(step_id="step-2"))
        entry = CandidateEntry(candidate_id="c1", decision=Decision.accepted)
        await writer.upsert_candidate("step-1", entry)
        await writer.upsert_candidate("step-2", entry)

        assert await CandidateRepository(test_session).count() == 2

    async def test_bulk_writes_all(self, writer, test_session):
        """A bulk write stores every distinct candidate."""
        entries = [
            CandidateEntry(candidate_id=f"c{i}", decision=Decision.rejected, reason="low_rating")
            for i in range(25)
        ]
        written = await writer.upsert_candidates_bulk("step-1", entries)

        assert written == 25
        assert await CandidateRepository(test_session).count() == 25

    async def test_bulk_duplicate_ids_last_wins(self, writer, test_session):
        """Duplicated IDs inside one batch collapse to the last entry."""
        written = await writer.upsert_candidates_bulk(
            "step-1",
            [
                CandidateEntry(candidate_id="c1", decision=Decision.accepted),
                CandidateEntry(candidate_id="c1", decision=Decision.rejected),
            ],
        )

        assert written == 1
        candidates = await CandidateRepository(test_session).list_by_step("step-1")
        assert candidates[0].decision == Decision.rejected

    async def test_bulk_is_all_or_nothing(self, writer, test_session):
        """A batch for a missing step writes nothing at all."""
        with pytest.raises(DatabaseIntegrityError):
            await writer.upsert_candidates_bulk(
                "step-404",
                [CandidateEntry(candidate_id="c1", decision=Decision.accepted)],
            )

        assert await CandidateRepository(test_session).count() == 0

    async def test_bulk_empty_is_noop(self, writer):
        """An empty batch writes nothing and does not fail."""
        assert await writer.upsert_candidates_bulk("step-404", []) == 0
