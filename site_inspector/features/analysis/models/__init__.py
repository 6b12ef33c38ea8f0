"""
Analysis models package.
"""
from site_inspector.features.analysis.models.analysis_job import AnalysisJob, AnalysisJobStatus

__all__ = ["AnalysisJob", "AnalysisJobStatus"]
