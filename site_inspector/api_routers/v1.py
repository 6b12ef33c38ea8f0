from fastapi import APIRouter

from site_inspector.features.analysis.routes.urls import router as urls_router
from site_inspector.features.health.routes.health import router as health_router

api_router = APIRouter()

# Register all feature routes
api_router.include_router(urls_router)
api_router.include_router(health_router)
