"""FastAPI application for ClinicFlow."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_flow import __version__
from clinic_flow.api.middleware import RequestLoggingMiddleware
from clinic_flow.api.routes import alerts, encounters, health, resources, routing, sections
from clinic_flow.config import get_settings
from clinic_flow.workflow.engine import WorkflowEngine
from clinic_flow.workflow.errors import WorkflowError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting ClinicFlow API")

    settings = get_settings()
    db_engine = None

    # A pre-built engine (tests, embedding) is used as-is
    if getattr(app.state, "engine", None) is None:
        from clinic_flow.core.database import build_engine, init_db

        db_engine = build_engine(settings.database_url)
        if settings.create_tables_on_startup:
            await init_db(db_engine)
        app.state.engine = WorkflowEngine.from_engine(db_engine)

    logger.info("ClinicFlow API started successfully")

    yield

    logger.info("Shutting down ClinicFlow API")
    if db_engine is not None:
        await db_engine.dispose()
        app.state.engine = None


def create_app(engine: Optional[WorkflowEngine] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="ClinicFlow API",
        description="Encounter workflow engine: status, rooms, routing, notes and alerts",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["health"])
    app.include_router(encounters.router, prefix="/api/v1", tags=["encounters"])
    app.include_router(resources.router, prefix="/api/v1", tags=["resources"])
    app.include_router(routing.router, prefix="/api/v1", tags=["routing"])
    app.include_router(sections.router, prefix="/api/v1", tags=["sections"])
    app.include_router(alerts.router, prefix="/api/v1", tags=["alerts"])

    @app.exception_handler(WorkflowError)
    async def workflow_exception_handler(request: Request, exc: WorkflowError):
        if exc.http_status >= 500:
            logger.error(f"Workflow error on {request.url.path}: {exc}")
        else:
            logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "validation_error", "detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "http_error", "detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.debug_mode else None,
            },
        )

    return app
