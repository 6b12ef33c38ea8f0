"""
Analysis orchestration.

One asyncio task per job, tracked by job id. Re-analysis and deletion cancel
the job's in-flight run and wait for it to unwind before touching the record,
so a job never has two runs at once.
"""
import asyncio
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncIterator, Dict, List, Optional

from site_inspector.features.analysis.exceptions import AnalysisError
from site_inspector.features.analysis.models.analysis_job import AnalysisJobStatus
from site_inspector.features.analysis.schemas.analysis import AnalysisJobRecord
from site_inspector.features.analysis.services.analysis.page_analyzer import PageAnalyzer
from site_inspector.features.analysis.services.store.base import ResultStore
from site_inspector.platform.exceptions import NotFoundError
from site_inspector.platform.logger import get_logger

logger = get_logger(__name__)

SHUTDOWN_DETAIL = "Analysis interrupted by shutdown"
STALE_RUN_DETAIL = "Analysis interrupted before completion"


def describe_failure(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


class AnalysisOrchestrator:

    def __init__(self, store: ResultStore, analyzer: PageAnalyzer):
        self.store = store
        self.analyzer = analyzer
        self._tasks: Dict[str, asyncio.Task] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._closing = False

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def submit(self, url: str) -> AnalysisJobRecord:
        """Create a queued job, start analyzing it in the background and return the queued record."""
        job_id = await self.store.create(url)
        job = await self.store.get(job_id)
        self._schedule(job_id, url)
        return job

    async def reanalyze(self, job_id: str) -> AnalysisJobRecord:
        """
        Restart analysis of an existing job.

        A run still in flight is cancelled first. The job goes back to queued
        with its previous result or error discarded.

        Raises:
            NotFoundError: no job with this id.
        """
        async with self._exclusive(job_id):
            job = await self.store.get(job_id)

            await self._cancel(job_id)
            # A run cancelled before it started is still queued
            current = await self.store.get(job_id)
            if current.status != AnalysisJobStatus.queued:
                await self.store.set_status(job_id, AnalysisJobStatus.queued)
            queued = await self.store.get(job_id)
            self._schedule(job_id, job.url)

        logger.info(f"Re-analysis scheduled for job {job_id} ({job.url})")
        return queued

    async def delete(self, job_id: str) -> None:
        async with self._exclusive(job_id):
            await self._cancel(job_id)
            await self.store.delete(job_id)

    async def get(self, job_id: str) -> AnalysisJobRecord:
        return await self.store.get(job_id)

    async def list_jobs(self, status: Optional[AnalysisJobStatus] = None) -> List[AnalysisJobRecord]:
        return await self.store.list_all(status)

    def is_active(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def active_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def recover(self) -> None:
        """
        Pick up jobs left behind by a previous process: runs that were in
        progress are marked failed, queued jobs are started.
        """
        for job in await self.store.list_all(AnalysisJobStatus.running):
            logger.warning(f"Job {job.id} was left running by a previous process")
            await self._record_error(job.id, STALE_RUN_DETAIL)

        for job in await self.store.list_all(AnalysisJobStatus.queued):
            if not self.is_active(job.id):
                logger.info(f"Resuming queued job {job.id} ({job.url})")
                self._schedule(job.id, job.url)

    async def shutdown(self, grace_seconds: float = 0) -> None:
        """Wait up to `grace_seconds` for running analyses, then cancel the rest."""
        self._closing = True
        pending = [task for task in self._tasks.values() if not task.done()]
        if not pending:
            return

        logger.info(f"Waiting for {len(pending)} analysis job(s) to finish")
        if grace_seconds > 0:
            _, pending = await asyncio.wait(pending, timeout=grace_seconds)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
            logger.warning(f"Cancelled {len(pending)} analysis job(s) at shutdown")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _exclusive(self, job_id: str) -> AsyncIterator[None]:
        """Serialize re-analysis and deletion of one job. The lock lives only while someone holds or awaits it."""
        lock = self._locks.setdefault(job_id, asyncio.Lock())
        self._lock_users[job_id] = self._lock_users.get(job_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[job_id] -= 1
            if not self._lock_users[job_id]:
                del self._lock_users[job_id]
                del self._locks[job_id]

    def _schedule(self, job_id: str, url: str) -> None:
        task = asyncio.create_task(self._run(job_id, url), name=f"analysis-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(partial(self._forget, job_id))

    def _forget(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    async def _cancel(self, job_id: str) -> None:
        task = self._tasks.pop(job_id, None)
        if task is None or task.done():
            return
        logger.info(f"Cancelling in-flight analysis of job {job_id}")
        task.cancel()
        await asyncio.wait([task])

    async def _run(self, job_id: str, url: str) -> None:
        try:
            await self.store.set_status(job_id, AnalysisJobStatus.running)
            logger.info(f"Analyzing {url} (job {job_id})")

            analysis = await self.analyzer.analyze(url)

            await self.store.set_result(job_id, analysis)
            logger.info(
                f"Job {job_id} done: {analysis.internal_links} internal, "
                f"{analysis.external_links} external, {len(analysis.broken_links)} broken links"
            )
        except asyncio.CancelledError:
            # Cancelled by reanalyze/delete: the caller owns the record now
            if self._closing:
                await self._record_error(job_id, SHUTDOWN_DETAIL)
            raise
        except NotFoundError:
            logger.info(f"Job {job_id} was deleted while being analyzed")
        except AnalysisError as e:
            logger.warning(f"Job {job_id} failed: {e}")
            await self._record_error(job_id, describe_failure(e))
        except Exception as e:
            logger.exception(f"Unexpected error while analyzing job {job_id}")
            await self._record_error(job_id, f"Unexpected error: {describe_failure(e)}")

    async def _record_error(self, job_id: str, detail: str) -> None:
        try:
            await self.store.set_error(job_id, detail)
        except NotFoundError:
            logger.info(f"Job {job_id} was deleted before its error could be recorded")
        except Exception:
            logger.exception(f"Could not record failure of job {job_id}")
