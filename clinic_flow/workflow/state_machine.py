"""Guarded status transitions for clinic encounters."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_flow.core.models import DepartmentRouting, Encounter
from clinic_flow.core.repository import DepartmentRoutingRepository, EncounterRepository
from clinic_flow.workflow.allocator import ResourceAllocator
from clinic_flow.workflow.errors import (
    AlreadyRouted,
    EncounterClosed,
    IllegalTransition,
    NotFoundError,
    StaleState,
)
from clinic_flow.workflow.states import (
    PHASE_TIMESTAMPS,
    RETURN_TO_NURSE_TIMESTAMP,
    STATUS_DEPARTMENT,
    EncounterStatus,
    RoutingPriority,
    RoutingStatus,
    can_transition,
    is_terminal,
)

logger = logging.getLogger(__name__)


@dataclass
class AppliedTransition:
    encounter: Encounter
    previous: EncounterStatus
    changed: bool
    routing: Optional[DepartmentRouting] = None


class EncounterStateMachine:
    """Applies one status change per call against a row-locked encounter.

    Entering an "At X" status claims the matching department slot and opens a
    routing record; leaving it clears the slot. Terminal statuses release the
    room and bed through the allocator before the status is written.
    """

    def __init__(self, session: AsyncSession, allocator: ResourceAllocator):
        self.session = session
        self.allocator = allocator
        self.encounters = EncounterRepository(session)
        self.routings = DepartmentRoutingRepository(session)

    async def load_for_update(self, encounter_id: uuid.UUID) -> Encounter:
        encounter = await self.encounters.get_for_update(encounter_id)
        if encounter is None:
            raise NotFoundError("encounter", encounter_id)
        return encounter

    async def check_in(
        self,
        patient_id: str,
        actor_id: Optional[str],
        chief_complaint: Optional[str] = None,
        encounter_type: str = "walk-in",
        triage_priority: str = "green",
        assigned_doctor_id: Optional[str] = None,
    ) -> Encounter:
        encounter = await self.encounters.create(
            patient_id=patient_id,
            chief_complaint=chief_complaint,
            encounter_type=encounter_type,
            triage_priority=triage_priority,
            assigned_doctor_id=assigned_doctor_id,
            receptionist_id=actor_id,
            status=EncounterStatus.CHECKED_IN.value,
            checked_in_at=datetime.now(timezone.utc),
        )
        logger.info("Patient %s checked in as encounter %s", patient_id, encounter.id)
        return encounter

    async def assign_staff(
        self,
        encounter_id: uuid.UUID,
        nurse_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
    ) -> Encounter:
        encounter = await self.load_for_update(encounter_id)
        status = EncounterStatus(encounter.status)
        if is_terminal(status):
            raise EncounterClosed(encounter.id, status.value)
        if nurse_id is not None:
            encounter.assigned_nurse_id = nurse_id
        if doctor_id is not None:
            encounter.assigned_doctor_id = doctor_id
        await self.session.flush()
        return encounter

    async def transition(
        self,
        encounter_id: uuid.UUID,
        target: EncounterStatus,
        actor_id: Optional[str],
        expected_version: Optional[int] = None,
        *,
        priority: RoutingPriority = RoutingPriority.ROUTINE,
        notes: Optional[str] = None,
        allow_return: bool = False,
    ) -> AppliedTransition:
        """Move the encounter to *target*.

        Re-entering the current status returns ``changed=False`` without
        touching timestamps or the version. ``allow_return`` lets a
        receptionist hand-off come back to the nurse from any open status
        once the nurse has seen the patient.
        """
        encounter = await self.load_for_update(encounter_id)
        if expected_version is not None and encounter.version != expected_version:
            raise StaleState(
                f"Encounter {encounter.id} is at version {encounter.version}, not {expected_version}",
                encounter_id=encounter.id,
                version=encounter.version,
            )

        current = EncounterStatus(encounter.status)
        if current == target:
            return AppliedTransition(encounter, current, changed=False)
        if is_terminal(current):
            raise EncounterClosed(encounter.id, current.value)

        returning = (
            allow_return
            and target == EncounterStatus.WITH_NURSE
            and encounter.nurse_started_at is not None
        )
        if not returning and not can_transition(current, target):
            raise IllegalTransition(current.value, target.value)

        routing = None
        department = STATUS_DEPARTMENT.get(target)
        if department is not None:
            if encounter.current_department not in (None, department.value):
                raise AlreadyRouted(encounter.current_department, department.value)
            encounter.current_department = department.value
            routing = await self.routings.open(
                encounter_id=encounter.id,
                department=department.value,
                status=RoutingStatus.IN_PROGRESS.value,
                priority=RoutingPriority(priority).value,
                notes=notes,
                routed_by=actor_id,
                started_at=datetime.now(timezone.utc),
            )
        elif current in STATUS_DEPARTMENT:
            encounter.current_department = None
            await self._close_open_routing(encounter, RoutingStatus.COMPLETED)

        if is_terminal(target):
            await self.allocator.release_all(encounter)
            encounter.current_department = None
            closing = RoutingStatus.CANCELLED if target == EncounterStatus.CANCELLED else RoutingStatus.COMPLETED
            await self._close_open_routing(encounter, closing)

        self._stamp(encounter, target)
        encounter.status = target.value
        await self.session.flush()
        logger.info(
            "Encounter %s: %s -> %s by %s", encounter.id, current.value, target.value, actor_id or "system"
        )
        return AppliedTransition(encounter, current, changed=True, routing=routing)

    @staticmethod
    def _stamp(encounter: Encounter, target: EncounterStatus) -> None:
        now = datetime.now(timezone.utc)
        field = PHASE_TIMESTAMPS[target]
        if target == EncounterStatus.WITH_NURSE and encounter.nurse_started_at is not None:
            field = RETURN_TO_NURSE_TIMESTAMP
        if getattr(encounter, field) is None:
            setattr(encounter, field, now)

    async def _close_open_routing(self, encounter: Encounter, status: RoutingStatus) -> None:
        routing = await self.routings.get_open(encounter.id)
        if routing is not None:
            await self.routings.close(routing, status)

