"""Payload builders shared by the test modules."""

from datetime import UTC, datetime
from typing import Any

from xray.models import RunCreate, StepCreate, StepType

STARTED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def make_run(
    run_id: str = "run-1", pipeline: str = "competitor-selection", **kwargs: Any
) -> RunCreate:
    data: dict[str, Any] = {
        "run_id": run_id,
        "pipeline": pipeline,
        "input": {"product": "phone case"},
        "started_at": STARTED_AT,
    }
    data.update(kwargs)
    return RunCreate(**data)


def make_step(
    step_id: str = "step-1",
    run_id: str = "run-1",
    step_type: StepType = StepType.filter,
    **kwargs: Any,
) -> StepCreate:
    data: dict[str, Any] = {
        "step_id": step_id,
        "run_id": run_id,
        "name": "price_filter",
        "type": step_type,
        "metadata": {"max_price": 30},
    }
    data.update(kwargs)
    return StepCreate(**data)
