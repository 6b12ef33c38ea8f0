from fastapi import Request

from site_inspector.features.analysis.services.orchestration.orchestrator import AnalysisOrchestrator


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    """The orchestrator created in the application lifespan."""
    return request.app.state.orchestrator
