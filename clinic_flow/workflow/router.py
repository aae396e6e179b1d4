"""Single-active-department routing.

An encounter is at no more than one department at a time. The decision is made
from the server-held ``current_department`` column on a row-locked encounter,
never from anything the client remembers.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_flow.core.models import DepartmentRouting, Encounter
from clinic_flow.core.repository import AlertRepository, DepartmentRoutingRepository
from clinic_flow.workflow.errors import AlreadyRouted, ConflictError, EncounterClosed, NotFoundError
from clinic_flow.workflow.state_machine import EncounterStateMachine
from clinic_flow.workflow.states import (
    DEPARTMENT_STATUS,
    STATUS_DEPARTMENT,
    AlertType,
    Department,
    EncounterStatus,
    RoutingPriority,
    RoutingStatus,
    can_transition,
    is_terminal,
)

logger = logging.getLogger(__name__)


@dataclass
class RouteOutcome:
    encounter: Encounter
    changed: bool
    routing: Optional[DepartmentRouting] = None


class DepartmentRouter:
    def __init__(self, session: AsyncSession, machine: EncounterStateMachine):
        self.session = session
        self.machine = machine
        self.routings = DepartmentRoutingRepository(session)
        self.alerts = AlertRepository(session)

    async def route_to(
        self,
        encounter_id: uuid.UUID,
        department: Department,
        actor_id: Optional[str],
        priority: RoutingPriority = RoutingPriority.ROUTINE,
        notes: Optional[str] = None,
    ) -> RouteOutcome:
        """Send the encounter to *department*.

        Routing to the department it is already at is a no-op; routing anywhere
        else while one is active raises ``AlreadyRouted``. Lab, imaging and
        pharmacy move the status to the matching "At X" status; receptionist
        routing only sets the marker.
        """
        encounter = await self.machine.load_for_update(encounter_id)
        status = EncounterStatus(encounter.status)
        if is_terminal(status):
            raise EncounterClosed(encounter.id, status.value)

        if encounter.current_department == department.value:
            return RouteOutcome(encounter, changed=False)
        if encounter.current_department is not None:
            raise AlreadyRouted(encounter.current_department, department.value)

        target = DEPARTMENT_STATUS.get(department)
        if target is not None:
            applied = await self.machine.transition(
                encounter.id, target, actor_id, priority=priority, notes=notes
            )
            routing = applied.routing
        else:
            encounter.current_department = department.value
            routing = await self.routings.open(
                encounter_id=encounter.id,
                department=department.value,
                status=RoutingStatus.PENDING.value,
                priority=RoutingPriority(priority).value,
                notes=notes,
                routed_by=actor_id,
            )

        # Routing the patient on finishes whatever "patient ready" task was pending
        cleared = await self.alerts.mark_read_for_encounter(encounter.id, AlertType.PATIENT_READY.value)
        await self.session.flush()
        logger.info(
            "Encounter %s routed to %s (%s) by %s; %d ready alerts cleared",
            encounter.id, department.value, RoutingPriority(priority).value, actor_id, cleared,
        )
        return RouteOutcome(encounter, changed=True, routing=routing)

    async def return_from_department(self, encounter_id: uuid.UUID, actor_id: Optional[str]) -> RouteOutcome:
        """Bring the encounter back to the nurse; a no-op when it is not routed."""
        encounter = await self.machine.load_for_update(encounter_id)
        department = encounter.current_department
        if department is None:
            return RouteOutcome(encounter, changed=False)

        status = EncounterStatus(encounter.status)
        if is_terminal(status):
            raise EncounterClosed(encounter.id, status.value)

        routing = await self.routings.get_open(encounter.id)
        if department == Department.RECEPTIONIST.value:
            encounter.current_department = None
            if routing is not None:
                await self.routings.close(routing, RoutingStatus.COMPLETED)
            # A receptionist hand-off before the nurse has seen the patient leaves the status alone
            if encounter.nurse_started_at is not None or can_transition(status, EncounterStatus.WITH_NURSE):
                await self.machine.transition(
                    encounter.id, EncounterStatus.WITH_NURSE, actor_id, allow_return=True
                )
        else:
            await self.machine.transition(encounter.id, EncounterStatus.WITH_NURSE, actor_id)
            if encounter.assigned_nurse_id:
                await self.alerts.create(
                    encounter_id=encounter.id,
                    from_user_id=actor_id,
                    to_user_id=encounter.assigned_nurse_id,
                    alert_type=AlertType.PATIENT_READY.value,
                    message=f"Patient {encounter.patient_id} is back from {department}",
                )

        await self.session.flush()
        logger.info("Encounter %s returned from %s by %s", encounter.id, department, actor_id)
        return RouteOutcome(encounter, changed=True, routing=routing)

    async def _load_routing(self, routing_id: uuid.UUID) -> tuple[DepartmentRouting, Encounter]:
        routing = await self.routings.get_by_id(routing_id)
        if routing is None:
            raise NotFoundError("routing", routing_id)
        encounter = await self.machine.load_for_update(routing.encounter_id)
        # Re-read under the encounter lock
        await self.session.refresh(routing)
        return routing, encounter

    async def start_routing(self, routing_id: uuid.UUID, actor_id: Optional[str]) -> RouteOutcome:
        """The department picks the patient up: pending -> in_progress."""
        routing, encounter = await self._load_routing(routing_id)
        if routing.status == RoutingStatus.IN_PROGRESS.value:
            return RouteOutcome(encounter, changed=False, routing=routing)
        if routing.status != RoutingStatus.PENDING.value:
            raise ConflictError(
                f"Routing {routing.id} is already {routing.status}", routing_id=routing.id, status=routing.status
            )
        await self.routings.start(routing)
        logger.info("Routing %s (%s) started by %s", routing.id, routing.department, actor_id)
        return RouteOutcome(encounter, changed=True, routing=routing)

    async def cancel_routing(
        self, routing_id: uuid.UUID, actor_id: Optional[str], reason: Optional[str] = None
    ) -> RouteOutcome:
        """Drop an open routing without the department finishing it.

        Frees the encounter's department slot. An encounter sitting at the
        cancelled department goes back to the nurse.
        """
        routing, encounter = await self._load_routing(routing_id)
        if routing.status == RoutingStatus.CANCELLED.value:
            return RouteOutcome(encounter, changed=False, routing=routing)
        if routing.status == RoutingStatus.COMPLETED.value:
            raise ConflictError(f"Routing {routing.id} is already completed", routing_id=routing.id)

        note = f"Cancelled: {reason or 'no reason given'}"
        routing.notes = f"{routing.notes} | {note}" if routing.notes else note
        await self.routings.close(routing, RoutingStatus.CANCELLED)

        if encounter.current_department == routing.department:
            status = EncounterStatus(encounter.status)
            if STATUS_DEPARTMENT.get(status) is not None:
                await self.machine.transition(encounter.id, EncounterStatus.WITH_NURSE, actor_id)
            else:
                encounter.current_department = None

        await self.session.flush()
        logger.info("Routing %s (%s) cancelled by %s", routing.id, routing.department, actor_id)
        return RouteOutcome(encounter, changed=True, routing=routing)

    async def history(self, encounter_id: uuid.UUID) -> Sequence[DepartmentRouting]:
        return await self.routings.list_by_encounter(encounter_id)

    async def queue(self, department: Department, limit: int = 100) -> Sequence[DepartmentRouting]:
        return await self.routings.list_queue(department.value, limit=limit)
