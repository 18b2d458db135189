"""Repository layer for data access operations."""

from xray.repositories.base import BaseRepository
from xray.repositories.candidate_repository import CandidateRepository
from xray.repositories.run_repository import RunRepository
from xray.repositories.step_repository import StepRepository

__all__ = ["BaseRepository", "CandidateRepository", "RunRepository", "StepRepository"]
