import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

from uuid6 import uuid7

from site_inspector.features.analysis.models.analysis_job import AnalysisJobStatus
from site_inspector.features.analysis.schemas.analysis import AnalysisJobRecord, PageAnalysis
from site_inspector.features.analysis.services.store.base import (
    ResultStore,
    ensure_settable,
    ensure_transition,
)
from site_inspector.platform.exceptions import NotFoundError


class InMemoryResultStore(ResultStore):
    """
    Process-local result store. Jobs are lost on restart.

    Records are copied in and out, so callers never hold a live reference.
    """

    def __init__(self):
        self._jobs: Dict[str, AnalysisJobRecord] = {}
        self._lock = asyncio.Lock()

    def _require(self, job_id: str) -> AnalysisJobRecord:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Analysis job {job_id} not found")
        return job

    async def create(self, url: str) -> str:
        now = datetime.now(timezone.utc)
        job = AnalysisJobRecord(
            id=str(uuid7()),
            url=url,
            status=AnalysisJobStatus.queued,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._jobs[job.id] = job
        return job.id

    async def _replace(self, job_id: str, new_status: AnalysisJobStatus, **changes) -> None:
        async with self._lock:
            job = self._require(job_id)
            ensure_transition(job_id, job.status, new_status)
            changes.update(status=new_status, updated_at=datetime.now(timezone.utc))
            # Swap in a whole new record so readers see either the old or the new state
            self._jobs[job_id] = job.model_copy(update=changes)

    async def set_status(self, job_id: str, status: AnalysisJobStatus) -> None:
        ensure_settable(status)
        if status == AnalysisJobStatus.queued:
            await self._replace(
                job_id, status,
                result=None, error_detail=None, started_at=None, completed_at=None,
            )
        else:
            await self._replace(job_id, status, started_at=datetime.now(timezone.utc))

    async def set_result(self, job_id: str, analysis: PageAnalysis) -> None:
        await self._replace(
            job_id, AnalysisJobStatus.done,
            result=analysis.model_copy(deep=True),
            error_detail=None,
            completed_at=datetime.now(timezone.utc),
        )

    async def set_error(self, job_id: str, detail: str) -> None:
        await self._replace(
            job_id, AnalysisJobStatus.error,
            result=None,
            error_detail=detail,
            completed_at=datetime.now(timezone.utc),
        )

    async def get(self, job_id: str) -> AnalysisJobRecord:
        async with self._lock:
            return self._require(job_id).model_copy(deep=True)

    async def list_all(self, status: Optional[AnalysisJobStatus] = None) -> List[AnalysisJobRecord]:
        async with self._lock:
            # dicts keep insertion order, which is creation order here
            return [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if status is None or job.status == status
            ]

    async def delete(self, job_id: str) -> None:
        async with self._lock:
            self._jobs.pop(job_id, None)
