"""Staff alerts. Clients poll the list endpoint; there is no push channel."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from clinic_flow.api.dependencies import get_actor_id, get_engine
from clinic_flow.core.schemas import AlertCreate, AlertList, AlertRead, AlertsMarked
from clinic_flow.workflow.engine import WorkflowEngine

router = APIRouter(prefix="/alerts")


@router.post("", response_model=AlertRead, status_code=201)
async def send_alert(
    data: AlertCreate,
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.send_alert(actor_id, data.to_user_id, data.encounter_id, data.alert_type, data.message)


@router.get("", response_model=AlertList)
async def list_alerts(
    user_id: Optional[str] = Query(None, description="Recipient; defaults to the calling staff member"),
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    recipient = user_id or actor_id
    alerts = await engine.list_alerts(recipient, unread_only=unread_only, limit=limit)
    return AlertList(
        alerts=alerts,
        unread_count=await engine.unread_count(recipient),
        poll_interval_seconds=engine.settings.alert_poll_interval_seconds,
    )


@router.post("/read-all", response_model=AlertsMarked)
async def mark_all_read(
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return AlertsMarked(marked=await engine.mark_all_read(actor_id))


@router.post("/{alert_id}/read", response_model=AlertRead)
async def mark_read(
    alert_id: uuid.UUID,
    actor_id: str = Depends(get_actor_id),
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.mark_read(alert_id, actor_id)
