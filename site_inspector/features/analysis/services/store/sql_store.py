from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from site_inspector.features.analysis.models.analysis_job import AnalysisJob, AnalysisJobStatus
from site_inspector.features.analysis.schemas.analysis import (
    AnalysisJobRecord,
    PageAnalysis,
    empty_heading_counts,
)
from site_inspector.features.analysis.services.store.base import (
    ResultStore,
    ensure_settable,
    ensure_transition,
)
from site_inspector.platform.exceptions import NotFoundError
from site_inspector.platform.logger import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqlResultStore(ResultStore):
    """Result store on top of the SQLAlchemy async session factory."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _load(self, db: AsyncSession, job_id: str) -> AnalysisJob:
        result = await db.execute(
            select(AnalysisJob).where(AnalysisJob.id == job_id).with_for_update()
        )
        job = result.scalar_one_or_none()
        if not job:
            raise NotFoundError(f"Analysis job {job_id} not found")
        return job

    async def create(self, url: str) -> str:
        async with self.session_factory() as db:
            job = AnalysisJob(
                url=url,
                status=AnalysisJobStatus.queued,
                internal_links=0,
                external_links=0,
                login_form_detected=False,
            )
            db.add(job)
            await db.commit()
            logger.info(f"Created analysis job {job.id} for {url}")
            return job.id

    async def set_status(self, job_id: str, status: AnalysisJobStatus) -> None:
        ensure_settable(status)
        async with self.session_factory() as db:
            job = await self._load(db, job_id)
            ensure_transition(job_id, job.status, status)

            job.status = status
            if status == AnalysisJobStatus.queued:
                _clear_outcome(job)
            else:
                job.started_at = _utcnow()
            await db.commit()

    async def set_result(self, job_id: str, analysis: PageAnalysis) -> None:
        async with self.session_factory() as db:
            job = await self._load(db, job_id)
            ensure_transition(job_id, job.status, AnalysisJobStatus.done)

            job.html_version = analysis.html_version
            job.page_title = analysis.page_title
            job.headings = dict(analysis.headings)
            job.internal_links = analysis.internal_links
            job.external_links = analysis.external_links
            job.broken_links = list(analysis.broken_links)
            job.login_form_detected = analysis.login_form_detected
            job.error_detail = None
            job.status = AnalysisJobStatus.done
            job.completed_at = _utcnow()
            await db.commit()

    async def set_error(self, job_id: str, detail: str) -> None:
        async with self.session_factory() as db:
            job = await self._load(db, job_id)
            ensure_transition(job_id, job.status, AnalysisJobStatus.error)

            started_at = job.started_at
            _clear_outcome(job)
            job.started_at = started_at
            job.error_detail = detail
            job.status = AnalysisJobStatus.error
            job.completed_at = _utcnow()
            await db.commit()

    async def get(self, job_id: str) -> AnalysisJobRecord:
        async with self.session_factory() as db:
            result = await db.execute(select(AnalysisJob).where(AnalysisJob.id == job_id))
            job = result.scalar_one_or_none()
            if not job:
                raise NotFoundError(f"Analysis job {job_id} not found")
            return AnalysisJobRecord.from_model(job)

    async def list_all(self, status: Optional[AnalysisJobStatus] = None) -> List[AnalysisJobRecord]:
        query = select(AnalysisJob).order_by(AnalysisJob.created_at, AnalysisJob.id)
        if status is not None:
            query = query.where(AnalysisJob.status == status)

        async with self.session_factory() as db:
            result = await db.execute(query)
            return [AnalysisJobRecord.from_model(job) for job in result.scalars().all()]

    async def delete(self, job_id: str) -> None:
        async with self.session_factory() as db:
            result = await db.execute(delete(AnalysisJob).where(AnalysisJob.id == job_id))
            await db.commit()

        if result.rowcount == 0:
            logger.info(f"Delete requested for missing analysis job {job_id}")


def _clear_outcome(job: AnalysisJob) -> None:
    job.html_version = None
    job.page_title = None
    job.headings = empty_heading_counts()
    job.internal_links = 0
    job.external_links = 0
    job.broken_links = None
    job.login_form_detected = False
    job.error_detail = None
    job.started_at = None
    job.completed_at = None
