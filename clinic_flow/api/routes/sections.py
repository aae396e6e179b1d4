"""Clinical note sections: versioned auto-save and reads."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends

from clinic_flow.api.dependencies import get_actor_id, get_actor_role, get_engine
from clinic_flow.core.schemas import SaveResult, SectionSave, SectionStatus, SectionView
from clinic_flow.workflow.engine import WorkflowEngine

router = APIRouter(prefix="/encounters/{encounter_id}/sections")


@router.get("", response_model=list[SectionView])
async def get_sections(encounter_id: uuid.UUID, engine: WorkflowEngine = Depends(get_engine)):
    return await engine.get_sections(encounter_id)


@router.get("/status", response_model=SectionStatus)
async def section_status(encounter_id: uuid.UUID, engine: WorkflowEngine = Depends(get_engine)):
    return await engine.section_status(encounter_id)


@router.put("/{section_id}", response_model=SaveResult)
async def save_section(
    encounter_id: uuid.UUID,
    section_id: str,
    data: SectionSave,
    actor_id: str = Depends(get_actor_id),
    header_role: Optional[str] = Depends(get_actor_role),
    engine: WorkflowEngine = Depends(get_engine),
):
    """Save a section. A stale ``edit_version`` returns 200 with ``outcome: discarded``."""
    return await engine.save_section(
        encounter_id,
        section_id,
        data.content,
        data.edit_version,
        actor_id=actor_id,
        actor_role=data.actor_role or header_role,
    )
