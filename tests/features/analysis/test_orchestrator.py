import asyncio

import pytest

from site_inspector.features.analysis.exceptions import FetchError
from site_inspector.features.analysis.models.analysis_job import AnalysisJobStatus
from site_inspector.features.analysis.schemas.analysis import PageAnalysis
from site_inspector.features.analysis.services.orchestration.orchestrator import (
    SHUTDOWN_DETAIL,
    STALE_RUN_DETAIL,
    AnalysisOrchestrator,
)
from site_inspector.features.analysis.services.store import InMemoryResultStore
from site_inspector.platform.exceptions import NotFoundError

TERMINAL = (AnalysisJobStatus.done, AnalysisJobStatus.error)


class RecordingStore(InMemoryResultStore):
    """In-memory store that remembers every status a job went through."""

    def __init__(self):
        super().__init__()
        self.history = {}

    async def create(self, url):
        job_id = await super().create(url)
        self.history[job_id] = ["queued"]
        return job_id

    async def set_status(self, job_id, status):
        await super().set_status(job_id, status)
        self.history[job_id].append(status.value)

    async def set_result(self, job_id, analysis):
        await super().set_result(job_id, analysis)
        self.history[job_id].append("done")

    async def set_error(self, job_id, detail):
        await super().set_error(job_id, detail)
        self.history[job_id].append("error")


class StubAnalyzer:
    def __init__(self, outcome=None):
        self.outcome = outcome or PageAnalysis(page_title="Stub", internal_links=1)
        self.calls = 0

    async def analyze(self, url):
        self.calls += 1
        await asyncio.sleep(0)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class BlockingAnalyzer:
    """First call blocks until released; later calls return immediately."""

    def __init__(self):
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.active = 0
        self.peak = 0
        self.cancelled = 0
        self.calls = 0

    async def analyze(self, url):
        self.calls += 1
        call = self.calls
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if call == 1:
                self.started.set()
                await self.release.wait()
            return PageAnalysis(page_title=f"run {call}")
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.active -= 1


async def wait_terminal(store, job_id, timeout=2.0):
    async def poll():
        while True:
            job = await store.get(job_id)
            if job.status in TERMINAL:
                return job
            await asyncio.sleep(0.01)

    return await asyncio.wait_for(poll(), timeout)


@pytest.mark.asyncio
async def test_submit_returns_queued_job_and_analyzes_in_background():
    store = RecordingStore()
    orchestrator = AnalysisOrchestrator(store, StubAnalyzer())

    job = await orchestrator.submit("http://example.com")
    assert job.status == AnalysisJobStatus.queued
    assert job.result is None

    done = await wait_terminal(store, job.id)
    assert done.status == AnalysisJobStatus.done
    assert done.result.page_title == "Stub"
    assert store.history[job.id] == ["queued", "running", "done"]


@pytest.mark.asyncio
async def test_fetch_failure_ends_in_error_with_detail():
    store = RecordingStore()
    analyzer = StubAnalyzer(FetchError("http://slow.example", "timed out after 10s"))
    orchestrator = AnalysisOrchestrator(store, analyzer)

    job = await orchestrator.submit("http://slow.example")
    failed = await wait_terminal(store, job.id)

    assert failed.status == AnalysisJobStatus.error
    assert failed.result is None
    assert failed.error_detail.startswith("FetchError: Failed to fetch http://slow.example")
    assert store.history[job.id] == ["queued", "running", "error"]


@pytest.mark.asyncio
async def test_unexpected_exception_never_leaves_job_running():
    store = InMemoryResultStore()
    orchestrator = AnalysisOrchestrator(store, StubAnalyzer(RuntimeError("kaboom")))

    job = await orchestrator.submit("http://example.com")
    failed = await wait_terminal(store, job.id)

    assert failed.status == AnalysisJobStatus.error
    assert failed.error_detail == "Unexpected error: RuntimeError: kaboom"


@pytest.mark.asyncio
async def test_reanalyze_runs_through_every_state_again():
    store = RecordingStore()
    analyzer = StubAnalyzer()
    orchestrator = AnalysisOrchestrator(store, analyzer)

    job = await orchestrator.submit("http://example.com")
    await wait_terminal(store, job.id)

    queued = await orchestrator.reanalyze(job.id)
    assert queued.id == job.id
    assert queued.status == AnalysisJobStatus.queued
    assert queued.result is None

    await wait_terminal(store, job.id)
    assert store.history[job.id] == ["queued", "running", "done", "queued", "running", "done"]
    assert analyzer.calls == 2


@pytest.mark.asyncio
async def test_reanalyze_after_error_clears_error():
    store = InMemoryResultStore()
    analyzer = StubAnalyzer(FetchError("http://example.com", "refused"))
    orchestrator = AnalysisOrchestrator(store, analyzer)

    job = await orchestrator.submit("http://example.com")
    await wait_terminal(store, job.id)

    analyzer.outcome = PageAnalysis(page_title="Back up")
    queued = await orchestrator.reanalyze(job.id)
    assert queued.error_detail is None

    done = await wait_terminal(store, job.id)
    assert done.status == AnalysisJobStatus.done
    assert done.error_detail is None
    assert done.result.page_title == "Back up"


@pytest.mark.asyncio
async def test_reanalyze_cancels_in_flight_run():
    store = RecordingStore()
    analyzer = BlockingAnalyzer()
    orchestrator = AnalysisOrchestrator(store, analyzer)

    job = await orchestrator.submit("http://example.com")
    await asyncio.wait_for(analyzer.started.wait(), 1)

    await orchestrator.reanalyze(job.id)
    done = await wait_terminal(store, job.id)

    assert analyzer.cancelled == 1
    assert analyzer.peak == 1
    assert done.result.page_title == "run 2"
    assert store.history[job.id] == ["queued", "running", "queued", "running", "done"]


@pytest.mark.asyncio
async def test_reanalyze_unknown_job():
    orchestrator = AnalysisOrchestrator(InMemoryResultStore(), StubAnalyzer())

    with pytest.raises(NotFoundError):
        await orchestrator.reanalyze("missing")
    assert orchestrator._locks == {}


@pytest.mark.asyncio
async def test_job_locks_are_released_once_nobody_waits():
    store = InMemoryResultStore()
    orchestrator = AnalysisOrchestrator(store, StubAnalyzer())

    job = await orchestrator.submit("http://example.com")
    await wait_terminal(store, job.id)

    await asyncio.gather(orchestrator.reanalyze(job.id), orchestrator.reanalyze(job.id))
    await wait_terminal(store, job.id)
    assert orchestrator._locks == {}

    await orchestrator.delete(job.id)
    assert orchestrator._locks == {}


@pytest.mark.asyncio
async def test_delete_cancels_in_flight_run_and_is_idempotent():
    store = InMemoryResultStore()
    analyzer = BlockingAnalyzer()
    orchestrator = AnalysisOrchestrator(store, analyzer)

    job = await orchestrator.submit("http://example.com")
    await asyncio.wait_for(analyzer.started.wait(), 1)

    await orchestrator.delete(job.id)
    assert analyzer.cancelled == 1
    assert not orchestrator.is_active(job.id)
    with pytest.raises(NotFoundError):
        await orchestrator.get(job.id)

    await orchestrator.delete(job.id)
    await orchestrator.delete("never-existed")


@pytest.mark.asyncio
async def test_shutdown_marks_unfinished_runs_as_failed():
    store = InMemoryResultStore()
    analyzer = BlockingAnalyzer()
    orchestrator = AnalysisOrchestrator(store, analyzer)

    job = await orchestrator.submit("http://example.com")
    await asyncio.wait_for(analyzer.started.wait(), 1)

    await orchestrator.shutdown(grace_seconds=0.05)

    failed = await store.get(job.id)
    assert failed.status == AnalysisJobStatus.error
    assert failed.error_detail == SHUTDOWN_DETAIL


@pytest.mark.asyncio
async def test_shutdown_lets_quick_runs_finish():
    store = InMemoryResultStore()
    orchestrator = AnalysisOrchestrator(store, StubAnalyzer())

    job = await orchestrator.submit("http://example.com")
    await orchestrator.shutdown(grace_seconds=1)

    assert (await store.get(job.id)).status == AnalysisJobStatus.done


@pytest.mark.asyncio
async def test_recover_fails_stale_runs_and_resumes_queued_jobs():
    store = InMemoryResultStore()
    stale = await store.create("http://stale.example")
    await store.set_status(stale, AnalysisJobStatus.running)
    pending = await store.create("http://pending.example")

    orchestrator = AnalysisOrchestrator(store, StubAnalyzer())
    await orchestrator.recover()

    stale_job = await store.get(stale)
    assert stale_job.status == AnalysisJobStatus.error
    assert stale_job.error_detail == STALE_RUN_DETAIL

    resumed = await wait_terminal(store, pending)
    assert resumed.status == AnalysisJobStatus.done


@pytest.mark.asyncio
async def test_jobs_are_independent():
    store = InMemoryResultStore()

    class PerUrlAnalyzer:
        async def analyze(self, url):
            if "bad" in url:
                raise FetchError(url, "refused")
            return PageAnalysis(page_title=url)

    orchestrator = AnalysisOrchestrator(store, PerUrlAnalyzer())
    good = await orchestrator.submit("http://good.example")
    bad = await orchestrator.submit("http://bad.example")

    assert (await wait_terminal(store, good.id)).status == AnalysisJobStatus.done
    assert (await wait_terminal(store, bad.id)).status == AnalysisJobStatus.error
    assert [job.id for job in await orchestrator.list_jobs()] == [good.id, bad.id]
