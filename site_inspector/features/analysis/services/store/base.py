from abc import ABC, abstractmethod
from typing import List, Optional

from site_inspector.features.analysis.models.analysis_job import AnalysisJobStatus, can_transition
from site_inspector.features.analysis.schemas.analysis import AnalysisJobRecord, PageAnalysis
from site_inspector.platform.exceptions import InvalidTransitionError


class ResultStore(ABC):
    """
    Persistence contract for analysis jobs.

    Writes to an unknown job raise NotFoundError. Status changes outside the
    job state machine raise InvalidTransitionError. Only queued and running
    can be set directly; done and error come with set_result / set_error.
    """

    @abstractmethod
    async def create(self, url: str) -> str:
        """Insert a queued job and return its id."""

    @abstractmethod
    async def set_status(self, job_id: str, status: AnalysisJobStatus) -> None:
        """Move to queued (clears result and error) or running."""

    @abstractmethod
    async def set_result(self, job_id: str, analysis: PageAnalysis) -> None:
        """Store the analysis and mark the job done."""

    @abstractmethod
    async def set_error(self, job_id: str, detail: str) -> None:
        """Store the diagnostic and mark the job failed."""

    @abstractmethod
    async def get(self, job_id: str) -> AnalysisJobRecord:
        ...

    @abstractmethod
    async def list_all(self, status: Optional[AnalysisJobStatus] = None) -> List[AnalysisJobRecord]:
        """All jobs in creation order, optionally only those in `status`."""

    @abstractmethod
    async def delete(self, job_id: str) -> None:
        """Remove the job. Deleting an unknown id is not an error."""


def ensure_transition(job_id: str, current: AnalysisJobStatus, new: AnalysisJobStatus) -> None:
    if not can_transition(current, new):
        raise InvalidTransitionError(
            f"Job {job_id} cannot move from {current.value} to {new.value}"
        )


def ensure_settable(status: AnalysisJobStatus) -> None:
    if status not in (AnalysisJobStatus.queued, AnalysisJobStatus.running):
        raise InvalidTransitionError(
            f"Status {status.value} is set together with its result; use set_result or set_error"
        )
