"""Pull-based alerts between staff on the same encounter.

Delivery is at-least-once and only visible when the recipient polls; the bus
does not deduplicate and never expires alerts.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_flow.core.models import Alert, Encounter
from clinic_flow.core.repository import AlertRepository
from clinic_flow.workflow.errors import NotFoundError, ValidationError
from clinic_flow.workflow.states import AlertType

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200


class AlertBus:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.alerts = AlertRepository(session)

    async def send(
        self,
        from_user_id: Optional[str],
        to_user_id: str,
        encounter_id: uuid.UUID,
        alert_type: AlertType = AlertType.GENERAL,
        message: Optional[str] = None,
    ) -> Alert:
        if not to_user_id:
            raise ValidationError("Alert recipient is required")
        if await self.session.get(Encounter, encounter_id) is None:
            raise NotFoundError("encounter", encounter_id)
        alert = await self.alerts.create(
            encounter_id=encounter_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            alert_type=AlertType(alert_type).value,
            message=message,
        )
        logger.info("Alert %s (%s) from %s to %s", alert.id, alert.alert_type, from_user_id, to_user_id)
        return alert

    async def mark_read(self, alert_id: uuid.UUID, by_user_id: str) -> Alert:
        """Mark an alert read. Alerts addressed to someone else look absent."""
        alert = await self.alerts.get_by_id(alert_id)
        if alert is None or alert.to_user_id != by_user_id:
            raise NotFoundError("alert", alert_id)
        if not alert.is_read:
            alert.is_read = True
            alert.read_at = datetime.now(timezone.utc)
            await self.session.flush()
        return alert

    async def list(self, user_id: str, unread_only: bool = False, limit: int = 50) -> Sequence[Alert]:
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        return await self.alerts.list_for_user(user_id, unread_only=unread_only, limit=limit)

    async def unread_count(self, user_id: str) -> int:
        return await self.alerts.count_unread(user_id)

    async def mark_all_read(self, user_id: str) -> int:
        if not user_id:
            raise ValidationError("user_id is required")
        marked = await self.alerts.mark_all_read(user_id)
        logger.info("Marked %d alerts read for %s", marked, user_id)
        return marked
