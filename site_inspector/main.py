from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from site_inspector.api_routers.v1 import api_router
from site_inspector.features.analysis.models import AnalysisJob  # noqa: F401  registers the table
from site_inspector.features.analysis.services.analysis.page_analyzer import PageAnalyzer
from site_inspector.features.analysis.services.orchestration.orchestrator import AnalysisOrchestrator
from site_inspector.features.analysis.services.store import (
    ResultStore,
    SqlResultStore,
    build_result_store,
)
from site_inspector.features.health.routes.health import router as health_router
from site_inspector.platform.config import settings
from site_inspector.platform.exceptions import add_exception_handlers
from site_inspector.platform.logger import get_logger

logger = get_logger(__name__)


def create_app(
    store: Optional[ResultStore] = None,
    analyzer: Optional[PageAnalyzer] = None,
) -> FastAPI:
    """
    Build the API. `store` and `analyzer` default to the configured result
    store backend and a network-backed analyzer.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        result_store = store or build_result_store(settings.RESULT_STORE_BACKEND)
        if isinstance(result_store, SqlResultStore):
            from site_inspector.platform.db.session import create_tables

            await create_tables()

        orchestrator = AnalysisOrchestrator(result_store, analyzer or PageAnalyzer())
        app.state.orchestrator = orchestrator
        await orchestrator.recover()
        logger.info(f"{settings.APP_NAME} started ({type(result_store).__name__})")

        yield

        await orchestrator.shutdown(settings.SHUTDOWN_GRACE_SECONDS)
        logger.info(f"{settings.APP_NAME} stopped")

    app = FastAPI(
        title="Site Inspector API",
        description="Submit a URL and get its structure, links and broken links analyzed",
        version="1.0.0",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    # Root endpoint for basic info
    @app.get("/", tags=["Info"])
    def root():
        return {
            "app_name": "Site Inspector API",
            "description": "Asynchronous page analysis: headings, links, broken links and login forms.",
            "version": "1.0.0",
            "docs_url": "/docs",
            "api_base": "/api/v1",
        }

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()
