"""
Risk Escalation — FastAPI Application.

Run: uvicorn riskescalation.api.app:app --host 0.0.0.0 --port 8002
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from riskescalation.api.routers.channels import router as channels_router
from riskescalation.api.routers.escalations import router as escalations_router
from riskescalation.api.routers.notifications import router as notifications_router
from riskescalation.config import settings
from riskescalation.db.engine import close_db, init_db
from riskescalation.exceptions import register_exception_handlers
from riskescalation.logging_config import configure_logging
from riskescalation.middleware import ErrorHandlerMiddleware, RequestContextMiddleware
from riskescalation.pipeline import EscalationPipeline, build_pipeline

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup and shutdown."""
    configure_logging()
    logger.info("risk_escalation_starting", version=settings.app_version)
    await init_db()
    if app.state.pipeline is None:
        app.state.pipeline = build_pipeline()
    yield
    await app.state.pipeline.close()
    await close_db()
    logger.info("risk_escalation_shutdown")


def create_app(pipeline: Optional[EscalationPipeline] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description=(
            "Student risk escalation: deduplicated staff notifications and "
            "guardian email/SMS alerts."
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.pipeline = pipeline

    register_exception_handlers(app)

    # Last added runs first: error handler wraps request context
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)

    app.include_router(escalations_router)
    app.include_router(notifications_router)
    app.include_router(channels_router)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "version": settings.app_version}

    return app


app = create_app()
