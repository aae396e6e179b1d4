"""Health check endpoints."""

from fastapi import APIRouter, Request

from clinic_flow import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Basic health check."""
    return {
        "status": "healthy",
        "service": "clinic-flow",
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict:
    """Readiness check - verifies the database answers."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        return {"status": "not_ready", "errors": ["Workflow engine not initialised"]}

    try:
        await engine.ping()
    except Exception as e:
        return {"status": "not_ready", "errors": [f"Database check failed: {e}"]}

    return {"status": "ready", "database": "ok"}


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - basic process health."""
    return {"status": "alive"}
