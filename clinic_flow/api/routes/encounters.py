"""Encounter check-in, lookup, staff assignment and status transitions."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from clinic_flow.api.dependencies import get_actor_id, get_engine
from clinic_flow.core.schemas import (
    AlertDoctorRequest,
    AlertRead,
    EncounterCreate,
    EncounterRead,
    StaffAssignment,
    TransitionRequest,
    TransitionResult,
)
from clinic_flow.workflow.engine import WorkflowEngine
from clinic_flow.workflow.states import EncounterStatus, allowed_targets

router = APIRouter(prefix="/encounters")


@router.post("", response_model=EncounterRead, status_code=201)
async def check_in(
    data: EncounterCreate,
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.check_in(
        data.patient_id,
        actor_id,
        chief_complaint=data.chief_complaint,
        encounter_type=data.encounter_type,
        triage_priority=data.triage_priority,
        assigned_doctor_id=data.assigned_doctor_id,
    )


@router.get("", response_model=list[EncounterRead])
async def list_encounters(
    active_only: bool = Query(True),
    status: Optional[EncounterStatus] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.list_encounters(active_only=active_only, status=status, limit=limit)


@router.get("/{encounter_id}", response_model=EncounterRead)
async def get_encounter(encounter_id: uuid.UUID, engine: WorkflowEngine = Depends(get_engine)):
    return await engine.get_encounter(encounter_id)


@router.get("/{encounter_id}/transitions")
async def list_allowed_transitions(encounter_id: uuid.UUID, engine: WorkflowEngine = Depends(get_engine)) -> dict:
    """Statuses the encounter can move to next, for building action buttons."""
    encounter = await engine.get_encounter(encounter_id)
    return {
        "status": encounter.status,
        "version": encounter.version,
        "allowed": [s.value for s in allowed_targets(encounter.status)],
    }


@router.post("/{encounter_id}/staff", response_model=EncounterRead)
async def assign_staff(
    encounter_id: uuid.UUID,
    data: StaffAssignment,
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.assign_staff(encounter_id, actor_id, nurse_id=data.nurse_id, doctor_id=data.doctor_id)


@router.post("/{encounter_id}/transition", response_model=TransitionResult)
async def transition(
    encounter_id: uuid.UUID,
    data: TransitionRequest,
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.transition(encounter_id, data.target, actor_id, expected_version=data.expected_version)


@router.post("/{encounter_id}/alert-doctor", response_model=AlertRead, status_code=201)
async def alert_doctor(
    encounter_id: uuid.UUID,
    data: AlertDoctorRequest,
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.alert_doctor(encounter_id, actor_id, message=data.message, doctor_id=data.doctor_id)
