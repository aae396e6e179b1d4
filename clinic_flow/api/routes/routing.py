"""Department routing: send to lab/imaging/pharmacy/receptionist and back."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from clinic_flow.api.dependencies import get_actor_id, get_engine
from clinic_flow.core.schemas import RouteRequest, RouteResult, RoutingCancelRequest, RoutingRead
from clinic_flow.workflow.engine import WorkflowEngine
from clinic_flow.workflow.states import Department

router = APIRouter()


@router.post("/encounters/{encounter_id}/route", response_model=RouteResult)
async def route_to(
    encounter_id: uuid.UUID,
    data: RouteRequest,
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.route_to(encounter_id, data.department, actor_id, data.priority, data.notes)


@router.post("/encounters/{encounter_id}/return", response_model=RouteResult)
async def return_from_department(
    encounter_id: uuid.UUID,
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.return_from_department(encounter_id, actor_id)


@router.post("/routings/{routing_id}/start", response_model=RouteResult)
async def start_routing(
    routing_id: uuid.UUID,
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.start_routing(routing_id, actor_id)


@router.post("/routings/{routing_id}/cancel", response_model=RouteResult)
async def cancel_routing(
    routing_id: uuid.UUID,
    data: Optional[RoutingCancelRequest] = None,
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.cancel_routing(routing_id, actor_id, data.reason if data else None)


@router.get("/encounters/{encounter_id}/routings", response_model=list[RoutingRead])
async def routing_history(encounter_id: uuid.UUID, engine: WorkflowEngine = Depends(get_engine)):
    return await engine.routing_history(encounter_id)


@router.get("/departments/{department}/queue", response_model=list[RoutingRead])
async def department_queue(
    department: Department,
    limit: int = Query(100, ge=1, le=500),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.department_queue(department, limit=limit)
