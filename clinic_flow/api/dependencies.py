"""FastAPI dependencies: the workflow engine and the acting staff member."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request

from clinic_flow.workflow.engine import WorkflowEngine


def get_engine(request: Request) -> WorkflowEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Workflow engine not initialised")
    return engine


async def get_actor_id(x_staff_id: Optional[str] = Header(None)) -> str:
    """Staff id of the caller. Authentication happens upstream; this only identifies."""
    if not x_staff_id or not x_staff_id.strip():
        raise HTTPException(status_code=400, detail="X-Staff-Id header is required")
    return x_staff_id.strip()


async def get_actor_role(x_staff_role: Optional[str] = Header(None)) -> Optional[str]:
    return x_staff_role.strip() if x_staff_role else None
