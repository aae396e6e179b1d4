"""Repositories over the workflow tables.

Repositories only read and write rows; business rules live in
``clinic_flow.workflow``. Methods named ``*_for_update`` take a row lock
(``SELECT ... FOR UPDATE``) that lasts until the surrounding transaction ends.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_flow.core.models import (
    Alert,
    AuditLog,
    ClinicalSection,
    DepartmentRouting,
    Encounter,
    Room,
    ShortStayBed,
)
from clinic_flow.workflow.states import (
    TERMINAL_STATUSES,
    ResourceKind,
    RoutingPriority,
    RoutingStatus,
)

_OPEN_ROUTING = (RoutingStatus.PENDING.value, RoutingStatus.IN_PROGRESS.value)
_TERMINAL_VALUES = tuple(s.value for s in TERMINAL_STATUSES)


class EncounterRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Encounter:
        enc = Encounter(**kwargs)
        self.session.add(enc)
        await self.session.flush()
        return enc

    async def get_by_id(self, encounter_id: uuid.UUID) -> Optional[Encounter]:
        return await self.session.get(Encounter, encounter_id)

    async def get_for_update(self, encounter_id: uuid.UUID) -> Optional[Encounter]:
        stmt = (
            select(Encounter)
            .where(Encounter.id == encounter_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        active_only: bool = True,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> Sequence[Encounter]:
        stmt = select(Encounter)
        if active_only:
            stmt = stmt.where(Encounter.status.not_in(_TERMINAL_VALUES))
        if status:
            stmt = stmt.where(Encounter.status == status)
        stmt = stmt.order_by(Encounter.checked_in_at).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_resource_holders(self, kind: ResourceKind) -> Sequence[tuple[uuid.UUID, uuid.UUID, str]]:
        """Return (encounter_id, resource_id, status) for every encounter referencing a resource."""
        column = Encounter.room_id if kind == ResourceKind.ROOM else Encounter.bed_id
        stmt = select(Encounter.id, column, Encounter.status).where(column.is_not(None))
        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]


class ResourceRepository:
    """Rooms and short-stay beds share one interface keyed by ``ResourceKind``."""

    _MODELS = {ResourceKind.ROOM: Room, ResourceKind.BED: ShortStayBed}

    def __init__(self, session: AsyncSession, kind: ResourceKind):
        self.session = session
        self.kind = kind
        self.model = self._MODELS[kind]

    async def get_many_for_update(self, resource_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, Room | ShortStayBed]:
        """Lock several rows in id order so concurrent callers never deadlock."""
        ordered = sorted(set(resource_ids), key=str)
        locked: dict[uuid.UUID, Room | ShortStayBed] = {}
        for rid in ordered:
            stmt = (
                select(self.model)
                .where(self.model.id == rid)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            row = (await self.session.execute(stmt)).scalar_one_or_none()
            if row is not None:
                locked[rid] = row
        return locked

    async def list(self, available_only: bool = False) -> Sequence[Room | ShortStayBed]:
        number = self.model.room_number if self.kind == ResourceKind.ROOM else self.model.bed_number
        stmt = select(self.model)
        if available_only:
            stmt = stmt.where(self.model.is_available.is_(True))
        # Numeric room labels sort naturally when compared by length first
        stmt = stmt.order_by(func.length(number), number)
        result = await self.session.execute(stmt)
        return result.scalars().all()


class SectionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, encounter_id: uuid.UUID, section_id: str) -> Optional[ClinicalSection]:
        stmt = (
            select(ClinicalSection)
            .where(
                ClinicalSection.encounter_id == encounter_id,
                ClinicalSection.section_id == section_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_encounter(self, encounter_id: uuid.UUID) -> Sequence[ClinicalSection]:
        stmt = (
            select(ClinicalSection)
            .where(ClinicalSection.encounter_id == encounter_id)
            .order_by(ClinicalSection.updated_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def insert(self, **kwargs) -> ClinicalSection:
        row = ClinicalSection(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def update_if_newer(
        self,
        encounter_id: uuid.UUID,
        section_id: str,
        edit_version: int,
        **values,
    ) -> bool:
        """Compare-and-set: write only when *edit_version* beats the stored one.

        Returns True when a row was updated.
        """
        stmt = (
            update(ClinicalSection)
            .where(
                ClinicalSection.encounter_id == encounter_id,
                ClinicalSection.section_id == section_id,
                ClinicalSection.last_edit_version < edit_version,
            )
            .values(last_edit_version=edit_version, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


class AlertRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Alert:
        alert = Alert(**kwargs)
        self.session.add(alert)
        await self.session.flush()
        return alert

    async def get_by_id(self, alert_id: uuid.UUID) -> Optional[Alert]:
        return await self.session.get(Alert, alert_id)

    async def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> Sequence[Alert]:
        stmt = select(Alert).where(Alert.to_user_id == user_id)
        if unread_only:
            stmt = stmt.where(Alert.is_read.is_(False))
        stmt = stmt.order_by(Alert.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_unread(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(Alert).where(
            Alert.to_user_id == user_id, Alert.is_read.is_(False)
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def mark_read_for_encounter(self, encounter_id: uuid.UUID, alert_type: str) -> int:
        stmt = (
            update(Alert)
            .where(
                Alert.encounter_id == encounter_id,
                Alert.alert_type == alert_type,
                Alert.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def mark_all_read(self, user_id: str) -> int:
        stmt = (
            update(Alert)
            .where(Alert.to_user_id == user_id, Alert.is_read.is_(False))
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount


class DepartmentRoutingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def open(self, **kwargs) -> DepartmentRouting:
        routing = DepartmentRouting(**kwargs)
        self.session.add(routing)
        await self.session.flush()
        return routing

    async def get_open(self, encounter_id: uuid.UUID) -> Optional[DepartmentRouting]:
        stmt = (
            select(DepartmentRouting)
            .where(
                DepartmentRouting.encounter_id == encounter_id,
                DepartmentRouting.status.in_(_OPEN_ROUTING),
            )
            .order_by(DepartmentRouting.routed_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, routing_id: uuid.UUID) -> Optional[DepartmentRouting]:
        return await self.session.get(DepartmentRouting, routing_id)

    async def start(self, routing: DepartmentRouting) -> DepartmentRouting:
        routing.status = RoutingStatus.IN_PROGRESS.value
        if routing.started_at is None:
            routing.started_at = datetime.now(timezone.utc)
        await self.session.flush()
        return routing

    async def close(self, routing: DepartmentRouting, status: RoutingStatus) -> DepartmentRouting:
        routing.status = status.value
        routing.completed_at = datetime.now(timezone.utc)
        await self.session.flush()
        return routing

    async def list_by_encounter(self, encounter_id: uuid.UUID) -> Sequence[DepartmentRouting]:
        stmt = (
            select(DepartmentRouting)
            .where(DepartmentRouting.encounter_id == encounter_id)
            .order_by(DepartmentRouting.routed_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_queue(self, department: str, limit: int = 100) -> Sequence[DepartmentRouting]:
        urgency = case(
            (DepartmentRouting.priority == RoutingPriority.STAT.value, 0),
            (DepartmentRouting.priority == RoutingPriority.URGENT.value, 1),
            else_=2,
        )
        stmt = (
            select(DepartmentRouting)
            .where(
                DepartmentRouting.department == department,
                DepartmentRouting.status.in_(_OPEN_ROUTING),
            )
            .order_by(urgency, DepartmentRouting.routed_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()


class AuditRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_action(
        self,
        action: str,
        resource_type: str,
        resource_id: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            details=details,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_by_resource(self, resource_type: str, resource_id: str, limit: int = 50) -> Sequence[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.resource_type == resource_type, AuditLog.resource_id == resource_id)
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
