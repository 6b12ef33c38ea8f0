from fastapi import APIRouter, Request

from site_inspector.platform.config import settings
from site_inspector.platform.response import api_response

router = APIRouter(tags=["Health"])


@router.get("/health", summary="Liveness check")
async def health_check(request: Request):
    # The orchestrator only exists while the lifespan is running
    orchestrator = getattr(request.app.state, "orchestrator", None)
    return api_response(
        data={
            "status": "ok",
            "service": settings.APP_NAME,
            "environment": settings.ENVIRONMENT,
            "active_analyses": orchestrator.active_count() if orchestrator else 0,
        },
        message="Service is healthy",
    )
