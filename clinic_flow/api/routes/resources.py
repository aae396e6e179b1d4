"""Exam room and short-stay bed allocation."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from clinic_flow.api.dependencies import get_actor_id, get_engine
from clinic_flow.core.schemas import BedRead, EncounterRead, ResourceRequest, RoomRead
from clinic_flow.workflow.engine import WorkflowEngine
from clinic_flow.workflow.states import ResourceKind

router = APIRouter()


@router.get("/rooms", response_model=list[RoomRead])
async def list_rooms(
    available_only: bool = Query(False),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.list_rooms(available_only=available_only)


@router.get("/beds", response_model=list[BedRead])
async def list_beds(
    available_only: bool = Query(False),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.list_beds(available_only=available_only)


def _register(kind: ResourceKind) -> None:
    """Add POST/PUT/DELETE /encounters/{id}/<kind> for one resource kind."""
    path = f"/encounters/{{encounter_id}}/{kind.value}"

    async def acquire(
        encounter_id: uuid.UUID,
        data: ResourceRequest,
        actor_id: str = Depends(get_actor_id),
        engine: WorkflowEngine = Depends(get_engine),
    ):
        return await engine.acquire(encounter_id, data.resource_id, kind, actor_id)

    async def reassign(
        encounter_id: uuid.UUID,
        data: ResourceRequest,
        actor_id: str = Depends(get_actor_id),
        engine: WorkflowEngine = Depends(get_engine),
    ):
        return await engine.reassign(encounter_id, data.resource_id, kind, actor_id)

    async def release(
        encounter_id: uuid.UUID,
        resource_id: Optional[uuid.UUID] = Query(None),
        actor_id: str = Depends(get_actor_id),
        engine: WorkflowEngine = Depends(get_engine),
    ):
        return await engine.release(encounter_id, kind, actor_id, resource_id)

    router.add_api_route(
        path, acquire, methods=["POST"], response_model=EncounterRead, name=f"acquire_{kind.value}"
    )
    router.add_api_route(
        path, reassign, methods=["PUT"], response_model=EncounterRead, name=f"reassign_{kind.value}"
    )
    router.add_api_route(
        path, release, methods=["DELETE"], response_model=EncounterRead, name=f"release_{kind.value}"
    )


for _kind in ResourceKind:
    _register(_kind)
