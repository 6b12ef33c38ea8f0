"""
Analysis Schemas

Domain records shared by the analyzer, the result stores and the API.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from site_inspector.features.analysis.models.analysis_job import AnalysisJob, AnalysisJobStatus


HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")


def empty_heading_counts() -> Dict[str, int]:
    return {tag: 0 for tag in HEADING_TAGS}


# ============================================================================
# Analysis output
# ============================================================================

class PageAnalysis(BaseModel):
    """Structured output of one successful page analysis."""
    html_version: str = "HTML5"
    page_title: str = ""
    headings: Dict[str, int] = Field(default_factory=empty_heading_counts)
    internal_links: int = Field(default=0, ge=0)
    external_links: int = Field(default=0, ge=0)
    broken_links: List[str] = Field(default_factory=list)
    login_form_detected: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "html_version": "HTML5",
                "page_title": "Example Domain",
                "headings": {"h1": 1, "h2": 0, "h3": 0, "h4": 0, "h5": 0, "h6": 0},
                "internal_links": 1,
                "external_links": 1,
                "broken_links": ["https://dead.example/x"],
                "login_form_detected": False,
            }
        }


# ============================================================================
# Job records
# ============================================================================

class AnalysisJobRecord(BaseModel):
    """Snapshot of one analysis job. `result` is set only when status is done."""
    id: str
    url: str
    status: AnalysisJobStatus
    result: Optional[PageAnalysis] = None
    error_detail: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, job: AnalysisJob) -> "AnalysisJobRecord":
        result = None
        if job.status == AnalysisJobStatus.done:
            result = PageAnalysis(
                html_version=job.html_version or "HTML5",
                page_title=job.page_title or "",
                headings={**empty_heading_counts(), **(job.headings or {})},
                internal_links=job.internal_links or 0,
                external_links=job.external_links or 0,
                broken_links=list(job.broken_links or []),
                login_form_detected=bool(job.login_form_detected),
            )

        return cls(
            id=job.id,
            url=job.url,
            status=job.status,
            result=result,
            error_detail=job.error_detail if job.status == AnalysisJobStatus.error else None,
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


# ============================================================================
# API requests
# ============================================================================

class UrlSubmission(BaseModel):
    """Request to analyze a URL."""
    url: str

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://example.com"
            }
        }
