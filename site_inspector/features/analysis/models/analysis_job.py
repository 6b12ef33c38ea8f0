import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, Index, Integer, JSON, String, Text

from site_inspector.platform.db.base import BaseModel


class AnalysisJobStatus(enum.Enum):
    """Analysis job state machine"""
    queued = "queued"
    running = "running"
    done = "done"
    error = "error"


# queued is only re-entered through an explicit re-analysis
ALLOWED_TRANSITIONS = {
    AnalysisJobStatus.queued: {AnalysisJobStatus.running, AnalysisJobStatus.error},
    AnalysisJobStatus.running: {AnalysisJobStatus.done, AnalysisJobStatus.error, AnalysisJobStatus.queued},
    AnalysisJobStatus.done: {AnalysisJobStatus.queued},
    AnalysisJobStatus.error: {AnalysisJobStatus.queued},
}


def can_transition(current: AnalysisJobStatus, new: AnalysisJobStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


class AnalysisJob(BaseModel):

    __tablename__ = "analysis_jobs"

    url = Column(String(2048), nullable=False)

    # Job status (state machine)
    status = Column(Enum(AnalysisJobStatus), default=AnalysisJobStatus.queued, nullable=False, index=True)

    # Error tracking
    error_detail = Column(Text, nullable=True)

    # Analysis results, populated only when status is done
    html_version = Column(String(64), nullable=True)
    page_title = Column(String(1024), nullable=True)
    headings = Column(JSON, nullable=True)  # {"h1": 1, ..., "h6": 0}
    internal_links = Column(Integer, default=0, nullable=False)
    external_links = Column(Integer, default=0, nullable=False)
    broken_links = Column(JSON, nullable=True)  # list of absolute URLs, document order
    login_form_detected = Column(Boolean, default=False, nullable=False)

    # Timestamps (created_at and updated_at inherited from BaseModel)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_analysis_jobs_created', 'created_at'),
    )
