"""
FastAPI application factory and API package.

Run with:
    uvicorn gap_analysis.api:app --reload --port 8000

Or via main.py:
    python -m gap_analysis serve
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gap_analysis.config import get_settings
from gap_analysis.errors import GapAnalysisError
from gap_analysis.api.routes import health_router, plan_router, reference_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Application factory — create and configure the FastAPI instance."""
    settings = get_settings()

    application = FastAPI(
        title="Gap Analysis API",
        description="Compliance and quality gap analysis of plans against reference standards",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()] or ["*"]
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(health_router, tags=["Health"])
    application.include_router(reference_router, prefix="/api/references", tags=["References"])
    application.include_router(plan_router, prefix="/api/plans", tags=["Plans"])

    @application.exception_handler(GapAnalysisError)
    async def gap_analysis_error_handler(request: Request, exc: GapAnalysisError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log(f"{request.method} {request.url.path} → {exc.status_code} {exc.error_code.value}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    logger.info(f"Created {settings.app_name} API (strategy={settings.analysis_strategy})")
    return application


# Module-level instance for `uvicorn gap_analysis.api:app`
app = create_app()
