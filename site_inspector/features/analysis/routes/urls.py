from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from site_inspector.features.analysis.dependencies.analysis import get_orchestrator
from site_inspector.features.analysis.models.analysis_job import AnalysisJobStatus
from site_inspector.features.analysis.schemas.analysis import UrlSubmission
from site_inspector.features.analysis.services.orchestration.orchestrator import AnalysisOrchestrator
from site_inspector.platform.exceptions import ValidationError
from site_inspector.platform.logger import get_logger
from site_inspector.platform.response import api_response
from site_inspector.platform.utils.url_validator import validate_url

logger = get_logger(__name__)

router = APIRouter(prefix="/urls", tags=["URL Analysis"])


@router.post(
    "",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a URL for analysis",
    description="Create an analysis job and start it in the background. Returns the queued job.",
)
async def submit_url(
    request: UrlSubmission,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    is_valid, url_str, error_message = validate_url(request.url)
    if not is_valid:
        raise ValidationError(f"Invalid URL: {error_message}")

    job = await orchestrator.submit(url_str)
    logger.info(f"Queued analysis job {job.id} for {url_str}")

    return api_response(
        data=job,
        message="URL queued for analysis",
        status_code=status.HTTP_201_CREATED,
    )


@router.get(
    "",
    response_model=dict,
    status_code=status.HTTP_200_OK,
    summary="List analysis jobs",
    description="All analysis jobs in creation order, optionally filtered by status",
)
async def list_urls(
    status_filter: Optional[AnalysisJobStatus] = Query(None, alias="status"),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    jobs = await orchestrator.list_jobs(status_filter)
    return api_response(
        data=jobs,
        message="Analysis jobs retrieved successfully",
        status_code=status.HTTP_200_OK,
    )


@router.get(
    "/{job_id}",
    response_model=dict,
    status_code=status.HTTP_200_OK,
    summary="Get an analysis job",
)
async def get_url(
    job_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    job = await orchestrator.get(job_id)
    return api_response(
        data=job,
        message="Analysis job retrieved successfully",
        status_code=status.HTTP_200_OK,
    )


@router.post(
    "/{job_id}/reanalyze",
    response_model=dict,
    status_code=status.HTTP_200_OK,
    summary="Re-run the analysis of a URL",
    description="Cancels a run still in progress, resets the job to queued and analyzes the URL again",
)
async def reanalyze_url(
    job_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    job = await orchestrator.reanalyze(job_id)
    return api_response(
        data=job,
        message="Reanalysis started",
        status_code=status.HTTP_200_OK,
    )


@router.delete(
    "/{job_id}",
    response_model=dict,
    status_code=status.HTTP_200_OK,
    summary="Delete an analysis job",
    description="Deleting a job that does not exist also succeeds",
)
async def delete_url(
    job_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.delete(job_id)
    return api_response(
        message="Deleted",
        status_code=status.HTTP_200_OK,
    )
