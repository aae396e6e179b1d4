"""WorkflowEngine: the one entry point collaborators call.

Each public coroutine is one operation: it takes the in-process keyed locks it
needs, opens a session and a transaction, runs the component logic, writes an
audit row and commits. Results are returned as API schemas built inside the
transaction, so callers never touch ORM objects.

Lock keys always start with ``encounter:`` or ``resource:``. Every operation
holds at most one encounter key, taken before any resource key, which keeps
lock acquisition in one global order.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from clinic_flow.config import Settings, get_settings
from clinic_flow.core.database import build_session_factory, seed_resources
from clinic_flow.core.models import Encounter
from clinic_flow.core.repository import (
    AuditRepository,
    DepartmentRoutingRepository,
    EncounterRepository,
    SectionRepository,
)
from clinic_flow.core.schemas import (
    AlertRead,
    BedRead,
    EncounterRead,
    ResourceCorrection,
    RoomRead,
    RouteResult,
    RoutingRead,
    SaveResult,
    SectionRead,
    SectionStatus,
    SectionView,
    TransitionResult,
)
from clinic_flow.observability import WorkflowEventLogger, get_workflow_logger
from clinic_flow.workflow.alerts import AlertBus
from clinic_flow.workflow.allocator import ResourceAllocator, held_resource
from clinic_flow.workflow.drafts import SectionDraftBuffer
from clinic_flow.workflow.errors import EncounterClosed, NotFoundError, StaleState, ValidationError
from clinic_flow.workflow.locks import KeyedLock
from clinic_flow.workflow.router import DepartmentRouter
from clinic_flow.workflow.sections import SectionAutoSaveCoordinator
from clinic_flow.workflow.state_machine import EncounterStateMachine
from clinic_flow.workflow.states import (
    AlertType,
    Department,
    EncounterStatus,
    ResourceKind,
    RoutingPriority,
    is_terminal,
)

logger = logging.getLogger(__name__)

IdLike = Union[uuid.UUID, str]

_RESOURCE_READ = {ResourceKind.ROOM: RoomRead, ResourceKind.BED: BedRead}


def _as_uuid(value: IdLike, what: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"Invalid {what}: {value!r}", value=value) from None


def _encounter_key(encounter_id: uuid.UUID) -> str:
    return f"encounter:{encounter_id}"


def _resource_key(kind: ResourceKind, resource_id: uuid.UUID) -> str:
    return f"resource:{kind.value}:{resource_id}"


def _held_keys(encounter: Encounter) -> list[str]:
    keys = []
    for kind in ResourceKind:
        held = held_resource(encounter, kind)
        if held is not None:
            keys.append(_resource_key(kind, held))
    return keys


class _Components:
    """Per-transaction wiring of the workflow components."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.allocator = ResourceAllocator(session)
        self.machine = EncounterStateMachine(session, self.allocator)
        self.router = DepartmentRouter(session, self.machine)
        self.sections = SectionAutoSaveCoordinator(session)
        self.alerts = AlertBus(session)
        self.audit = AuditRepository(session)


class WorkflowEngine:
    """Facade over the encounter workflow components."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        telemetry: Optional[WorkflowEventLogger] = None,
        locks: Optional[KeyedLock] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.telemetry = telemetry or get_workflow_logger()
        self.locks = locks or KeyedLock()
        self.settings = settings or get_settings()

    @classmethod
    def from_engine(cls, engine: AsyncEngine, **kwargs: Any) -> "WorkflowEngine":
        return cls(build_session_factory(engine), **kwargs)

    @asynccontextmanager
    async def _unit_of_work(
        self,
        *keys: str,
        lock_held_by: Optional[uuid.UUID] = None,
    ) -> AsyncIterator[_Components]:
        """Lock *keys*, then run one transaction.

        With ``lock_held_by`` only the encounter key is taken first. The
        resource keys among *keys* are then taken together with the keys of
        the rooms and beds that encounter currently holds.
        """
        if lock_held_by is not None:
            first = [k for k in keys if k.startswith("encounter:")]
            later = [k for k in keys if not k.startswith("encounter:")]
        else:
            first, later = list(keys), []

        async with AsyncExitStack() as stack:
            await stack.enter_async_context(self.locks.hold(*first))
            session = await stack.enter_async_context(self.session_factory())
            try:
                async with session.begin():
                    if lock_held_by is not None:
                        encounter = await session.get(Encounter, lock_held_by)
                        held = _held_keys(encounter) if encounter is not None else []
                        await stack.enter_async_context(self.locks.hold(*later, *held))
                    yield _Components(session)
            except StaleDataError as e:
                raise StaleState("Encounter was modified concurrently; re-read and retry") from e

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[_Components]:
        async with self.session_factory() as session:
            yield _Components(session)

    # Encounters

    async def check_in(
        self,
        patient_id: str,
        actor_id: Optional[str],
        chief_complaint: Optional[str] = None,
        encounter_type: str = "walk-in",
        triage_priority: str = "green",
        assigned_doctor_id: Optional[str] = None,
    ) -> EncounterRead:
        if not patient_id or not patient_id.strip():
            raise ValidationError("patient_id is required")

        with self.telemetry.operation("encounters", "check_in", actor_id=actor_id) as event:
            async with self._unit_of_work() as c:
                encounter = await c.machine.check_in(
                    patient_id.strip(),
                    actor_id,
                    chief_complaint=chief_complaint,
                    encounter_type=encounter_type,
                    triage_priority=triage_priority,
                    assigned_doctor_id=assigned_doctor_id,
                )
                await c.audit.log_action(
                    "check_in", "encounter", encounter.id, actor_id, {"patient_id": encounter.patient_id}
                )
                result = EncounterRead.model_validate(encounter)
            event.encounter_id = str(result.id)
            event.to_status = result.status.value
            event.version = result.version
        return result

    async def get_encounter(self, encounter_id: IdLike) -> EncounterRead:
        eid = _as_uuid(encounter_id, "encounter id")
        async with self._read() as c:
            encounter = await EncounterRepository(c.session).get_by_id(eid)
            if encounter is None:
                raise NotFoundError("encounter", eid)
            return EncounterRead.model_validate(encounter)

    async def list_encounters(
        self,
        active_only: bool = True,
        status: Optional[EncounterStatus] = None,
        limit: int = 100,
    ) -> list[EncounterRead]:
        async with self._read() as c:
            rows = await EncounterRepository(c.session).list(
                active_only=active_only,
                status=status.value if status else None,
                limit=limit,
            )
            return [EncounterRead.model_validate(r) for r in rows]

    async def assign_staff(
        self,
        encounter_id: IdLike,
        actor_id: Optional[str],
        nurse_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
    ) -> EncounterRead:
        """Assign nurse and/or doctor; a newly assigned nurse gets a patient-ready alert."""
        eid = _as_uuid(encounter_id, "encounter id")
        if nurse_id is None and doctor_id is None:
            raise ValidationError("Provide nurse_id, doctor_id or both")

        with self.telemetry.operation("encounters", "assign_staff", actor_id, eid) as event:
            async with self._unit_of_work(_encounter_key(eid)) as c:
                before = await c.machine.load_for_update(eid)
                previous_nurse = before.assigned_nurse_id
                encounter = await c.machine.assign_staff(eid, nurse_id=nurse_id, doctor_id=doctor_id)
                if nurse_id and nurse_id != previous_nurse:
                    await c.alerts.send(
                        actor_id,
                        nurse_id,
                        eid,
                        AlertType.PATIENT_READY,
                        f"Patient {encounter.patient_id} is ready for you",
                    )
                await c.audit.log_action(
                    "assign_staff", "encounter", eid, actor_id, {"nurse_id": nurse_id, "doctor_id": doctor_id}
                )
                result = EncounterRead.model_validate(encounter)
            event.version = result.version
        return result

    async def alert_doctor(
        self,
        encounter_id: IdLike,
        actor_id: Optional[str],
        message: Optional[str] = None,
        doctor_id: Optional[str] = None,
    ) -> AlertRead:
        """Nurse tells the doctor the patient is ready.

        Goes to ``doctor_id`` or the encounter's assigned doctor. A doctor named
        here on an encounter with none assigned becomes the assigned doctor.
        """
        eid = _as_uuid(encounter_id, "encounter id")

        with self.telemetry.operation(
            "alerts", "alert_doctor", actor_id, eid, alert_type=AlertType.PATIENT_READY.value
        ) as event:
            async with self._unit_of_work(_encounter_key(eid)) as c:
                encounter = await c.machine.load_for_update(eid)
                if is_terminal(EncounterStatus(encounter.status)):
                    raise EncounterClosed(encounter.id, encounter.status)
                recipient = doctor_id or encounter.assigned_doctor_id
                if not recipient:
                    raise ValidationError("No doctor is assigned to this encounter", encounter_id=eid)
                if encounter.assigned_doctor_id is None:
                    await c.machine.assign_staff(eid, doctor_id=recipient)
                alert = await c.alerts.send(
                    actor_id,
                    recipient,
                    eid,
                    AlertType.PATIENT_READY,
                    message or f"Patient {encounter.patient_id} is ready for the doctor",
                )
                await c.audit.log_action("alert_doctor", "alert", alert.id, actor_id, {"to": recipient})
                result = AlertRead.model_validate(alert)
            event.alert_id = str(result.id)
            event.to_user_id = recipient
        return result

    async def transition(
        self,
        encounter_id: IdLike,
        target: EncounterStatus,
        actor_id: Optional[str],
        expected_version: Optional[int] = None,
    ) -> TransitionResult:
        eid = _as_uuid(encounter_id, "encounter id")
        target = EncounterStatus(target)

        with self.telemetry.operation(
            "encounters", "transition", actor_id, eid, to_status=target.value
        ) as event:
            async with self._unit_of_work(_encounter_key(eid), lock_held_by=eid) as c:
                applied = await c.machine.transition(eid, target, actor_id, expected_version)
                if applied.changed:
                    await c.audit.log_action(
                        "transition",
                        "encounter",
                        eid,
                        actor_id,
                        {"from": applied.previous.value, "to": target.value},
                    )
                result = TransitionResult.from_encounter(applied.encounter, applied.previous, applied.changed)
            event.from_status = result.previous_status.value
            event.changed = result.changed
            event.version = result.version
        return result

    async def cancel(self, encounter_id: IdLike, actor_id: Optional[str]) -> TransitionResult:
        return await self.transition(encounter_id, EncounterStatus.CANCELLED, actor_id)

    # Rooms and beds

    async def acquire(
        self, encounter_id: IdLike, resource_id: IdLike, kind: ResourceKind, actor_id: Optional[str]
    ) -> EncounterRead:
        eid = _as_uuid(encounter_id, "encounter id")
        rid = _as_uuid(resource_id, f"{kind.value} id")

        with self.telemetry.operation(
            "resources", "acquire", actor_id, eid, kind=kind.value, resource_id=str(rid)
        ):
            async with self._unit_of_work(_encounter_key(eid), _resource_key(kind, rid)) as c:
                encounter = await c.machine.load_for_update(eid)
                if await c.allocator.acquire(encounter, rid, kind, actor_id):
                    await c.audit.log_action(f"acquire_{kind.value}", "encounter", eid, actor_id, {"resource_id": str(rid)})
                return EncounterRead.model_validate(encounter)

    async def reassign(
        self, encounter_id: IdLike, new_resource_id: IdLike, kind: ResourceKind, actor_id: Optional[str]
    ) -> EncounterRead:
        eid = _as_uuid(encounter_id, "encounter id")
        rid = _as_uuid(new_resource_id, f"{kind.value} id")

        with self.telemetry.operation(
            "resources", "reassign", actor_id, eid, kind=kind.value, resource_id=str(rid)
        ) as event:
            async with self._unit_of_work(
                _encounter_key(eid), _resource_key(kind, rid), lock_held_by=eid
            ) as c:
                encounter = await c.machine.load_for_update(eid)
                old_id = await c.allocator.reassign(encounter, rid, kind, actor_id)
                if old_id != rid:
                    await c.audit.log_action(
                        f"reassign_{kind.value}",
                        "encounter",
                        eid,
                        actor_id,
                        {"from": str(old_id) if old_id else None, "to": str(rid)},
                    )
                result = EncounterRead.model_validate(encounter)
            event.previous_resource_id = str(old_id) if old_id else None
        return result

    async def release(
        self,
        encounter_id: IdLike,
        kind: ResourceKind,
        actor_id: Optional[str],
        resource_id: Optional[IdLike] = None,
    ) -> EncounterRead:
        eid = _as_uuid(encounter_id, "encounter id")
        rid = _as_uuid(resource_id, f"{kind.value} id") if resource_id is not None else None

        with self.telemetry.operation("resources", "release", actor_id, eid, kind=kind.value) as event:
            async with self._unit_of_work(_encounter_key(eid), lock_held_by=eid) as c:
                encounter = await c.machine.load_for_update(eid)
                held = held_resource(encounter, kind)
                if await c.allocator.release(encounter, kind, rid):
                    await c.audit.log_action(f"release_{kind.value}", "encounter", eid, actor_id, {"resource_id": str(held)})
                    event.resource_id = str(held)
                return EncounterRead.model_validate(encounter)

    async def acquire_room(self, encounter_id: IdLike, room_id: IdLike, actor_id: Optional[str] = None) -> EncounterRead:
        return await self.acquire(encounter_id, room_id, ResourceKind.ROOM, actor_id)

    async def reassign_room(self, encounter_id: IdLike, room_id: IdLike, actor_id: Optional[str] = None) -> EncounterRead:
        return await self.reassign(encounter_id, room_id, ResourceKind.ROOM, actor_id)

    async def release_room(
        self, encounter_id: IdLike, actor_id: Optional[str] = None, room_id: Optional[IdLike] = None
    ) -> EncounterRead:
        return await self.release(encounter_id, ResourceKind.ROOM, actor_id, room_id)

    async def acquire_bed(self, encounter_id: IdLike, bed_id: IdLike, actor_id: Optional[str] = None) -> EncounterRead:
        return await self.acquire(encounter_id, bed_id, ResourceKind.BED, actor_id)

    async def reassign_bed(self, encounter_id: IdLike, bed_id: IdLike, actor_id: Optional[str] = None) -> EncounterRead:
        return await self.reassign(encounter_id, bed_id, ResourceKind.BED, actor_id)

    async def release_bed(
        self, encounter_id: IdLike, actor_id: Optional[str] = None, bed_id: Optional[IdLike] = None
    ) -> EncounterRead:
        return await self.release(encounter_id, ResourceKind.BED, actor_id, bed_id)

    async def list_resources(self, kind: ResourceKind, available_only: bool = False) -> list:
        schema = _RESOURCE_READ[kind]
        async with self._read() as c:
            rows = await c.allocator.list_resources(kind, available_only=available_only)
            return [schema.model_validate(r) for r in rows]

    async def list_rooms(self, available_only: bool = False) -> list[RoomRead]:
        return await self.list_resources(ResourceKind.ROOM, available_only)

    async def list_beds(self, available_only: bool = False) -> list[BedRead]:
        return await self.list_resources(ResourceKind.BED, available_only)

    async def sync_resource_availability(self, actor_id: Optional[str] = None) -> list[ResourceCorrection]:
        """Repair rooms and beds whose availability drifted from the encounter table."""
        async with self._read() as c:
            keys = [
                _resource_key(kind, r.id)
                for kind in ResourceKind
                for r in await c.allocator.list_resources(kind)
            ]

        with self.telemetry.operation("resources", "sync_availability", actor_id) as event:
            async with self._unit_of_work(*keys) as c:
                corrections = await c.allocator.sync_availability()
                if corrections:
                    await c.audit.log_action(
                        "sync_availability", "resource", "all", actor_id, {"corrected": len(corrections)}
                    )
            event.corrections = len(corrections)
        return [
            ResourceCorrection(
                kind=fix.kind.value,
                resource_id=fix.resource_id,
                identifier=fix.identifier,
                was_available=fix.was_available,
                is_available=fix.is_available,
                current_encounter_id=fix.current_encounter_id,
            )
            for fix in corrections
        ]

    async def seed_resources(self, rooms: Optional[int] = None, beds: Optional[int] = None) -> tuple[int, int]:
        return await seed_resources(self.session_factory, rooms=rooms, beds=beds)

    # Department routing

    async def route_to(
        self,
        encounter_id: IdLike,
        department: Department,
        actor_id: Optional[str],
        priority: RoutingPriority = RoutingPriority.ROUTINE,
        notes: Optional[str] = None,
    ) -> RouteResult:
        eid = _as_uuid(encounter_id, "encounter id")
        department = Department(department)
        priority = RoutingPriority(priority)

        with self.telemetry.operation(
            "routing", "route_to", actor_id, eid, department=department.value, priority=priority.value
        ) as event:
            async with self._unit_of_work(_encounter_key(eid)) as c:
                outcome = await c.router.route_to(eid, department, actor_id, priority, notes)
                if outcome.changed:
                    await c.audit.log_action(
                        "route_to", "encounter", eid, actor_id, {"department": department.value, "priority": priority.value}
                    )
                result = _route_result(outcome)
            event.changed = result.changed
        return result

    async def return_from_department(self, encounter_id: IdLike, actor_id: Optional[str]) -> RouteResult:
        eid = _as_uuid(encounter_id, "encounter id")

        with self.telemetry.operation("routing", "return_from_department", actor_id, eid) as event:
            async with self._unit_of_work(_encounter_key(eid)) as c:
                before = await c.machine.load_for_update(eid)
                department = before.current_department
                outcome = await c.router.return_from_department(eid, actor_id)
                if outcome.changed:
                    await c.audit.log_action(
                        "return_from_department", "encounter", eid, actor_id, {"department": department}
                    )
                result = _route_result(outcome)
            event.department = department
            event.changed = result.changed
        return result

    async def _routing_encounter(self, routing_id: uuid.UUID) -> uuid.UUID:
        async with self._read() as c:
            routing = await DepartmentRoutingRepository(c.session).get_by_id(routing_id)
            if routing is None:
                raise NotFoundError("routing", routing_id)
            return routing.encounter_id

    async def start_routing(self, routing_id: IdLike, actor_id: Optional[str]) -> RouteResult:
        """A department claims a queued routing (pending -> in_progress)."""
        rid = _as_uuid(routing_id, "routing id")
        eid = await self._routing_encounter(rid)

        with self.telemetry.operation("routing", "start_routing", actor_id, eid) as event:
            async with self._unit_of_work(_encounter_key(eid)) as c:
                outcome = await c.router.start_routing(rid, actor_id)
                if outcome.changed:
                    await c.audit.log_action(
                        "start_routing", "department_routing", rid, actor_id, {"department": outcome.routing.department}
                    )
                result = _route_result(outcome)
            event.department = result.routing.department.value
            event.changed = result.changed
        return result

    async def cancel_routing(
        self, routing_id: IdLike, actor_id: Optional[str], reason: Optional[str] = None
    ) -> RouteResult:
        rid = _as_uuid(routing_id, "routing id")
        eid = await self._routing_encounter(rid)

        with self.telemetry.operation("routing", "cancel_routing", actor_id, eid) as event:
            async with self._unit_of_work(_encounter_key(eid)) as c:
                outcome = await c.router.cancel_routing(rid, actor_id, reason)
                if outcome.changed:
                    await c.audit.log_action(
                        "cancel_routing",
                        "department_routing",
                        rid,
                        actor_id,
                        {"department": outcome.routing.department, "reason": reason},
                    )
                result = _route_result(outcome)
            event.department = result.routing.department.value
            event.changed = result.changed
        return result

    async def routing_history(self, encounter_id: IdLike) -> list[RoutingRead]:
        eid = _as_uuid(encounter_id, "encounter id")
        async with self._read() as c:
            if await EncounterRepository(c.session).get_by_id(eid) is None:
                raise NotFoundError("encounter", eid)
            return [RoutingRead.model_validate(r) for r in await c.router.history(eid)]

    async def department_queue(self, department: Department, limit: int = 100) -> list[RoutingRead]:
        async with self._read() as c:
            return [RoutingRead.model_validate(r) for r in await c.router.queue(Department(department), limit)]

    # Clinical sections

    async def save_section(
        self,
        encounter_id: IdLike,
        section_id: str,
        content: str,
        edit_version: int,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
    ) -> SaveResult:
        """Versioned upsert of one section; takes no in-process lock."""
        eid = _as_uuid(encounter_id, "encounter id")

        with self.telemetry.operation(
            "sections",
            "save_section",
            actor_id,
            eid,
            section_id=section_id,
            content_length=len(content or ""),
        ) as event:
            async with self._unit_of_work() as c:
                saved = await c.sections.save_section(eid, section_id, content, edit_version, actor_id, actor_role)
                if saved.accepted:
                    await c.audit.log_action(
                        "save_section", "clinical_section", f"{eid}/{section_id}", actor_id, {"edit_version": edit_version}
                    )
                result = SaveResult(outcome=saved.outcome.value, section=SectionRead.model_validate(saved.section))
            event.outcome = result.outcome
            event.edit_version = edit_version
        return result

    async def get_sections(self, encounter_id: IdLike) -> list[SectionView]:
        eid = _as_uuid(encounter_id, "encounter id")
        async with self._read() as c:
            return await c.sections.get_sections(eid)

    async def section_status(self, encounter_id: IdLike) -> SectionStatus:
        eid = _as_uuid(encounter_id, "encounter id")
        async with self._read() as c:
            return await c.sections.completion_status(eid)

    async def draft_buffer(
        self,
        encounter_id: IdLike,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        quiescence_seconds: Optional[float] = None,
    ) -> SectionDraftBuffer:
        """A debounce buffer that saves through ``save_section`` for one encounter.

        Edit counters start above the versions already stored so the first
        flush is never discarded as stale.
        """
        eid = _as_uuid(encounter_id, "encounter id")
        async with self._read() as c:
            if await EncounterRepository(c.session).get_by_id(eid) is None:
                raise NotFoundError("encounter", eid)
            rows = await SectionRepository(c.session).list_by_encounter(eid)
            known = {row.section_id: row.last_edit_version for row in rows}

        async def save(section_id: str, content: str, edit_version: int) -> SaveResult:
            return await self.save_section(eid, section_id, content, edit_version, actor_id, actor_role)

        if quiescence_seconds is None:
            quiescence_seconds = self.settings.autosave_quiescence_seconds
        return SectionDraftBuffer(save, quiescence_seconds=quiescence_seconds, known_versions=known)

    # Alerts

    async def send_alert(
        self,
        from_user_id: Optional[str],
        to_user_id: str,
        encounter_id: IdLike,
        alert_type: AlertType = AlertType.GENERAL,
        message: Optional[str] = None,
    ) -> AlertRead:
        eid = _as_uuid(encounter_id, "encounter id")
        alert_type = AlertType(alert_type)

        with self.telemetry.operation(
            "alerts", "send", from_user_id, eid, alert_type=alert_type.value, to_user_id=to_user_id
        ) as event:
            async with self._unit_of_work() as c:
                alert = await c.alerts.send(from_user_id, to_user_id, eid, alert_type, message)
                await c.audit.log_action(
                    "send_alert", "alert", alert.id, from_user_id, {"to": to_user_id, "type": alert_type.value}
                )
                result = AlertRead.model_validate(alert)
            event.alert_id = str(result.id)
        return result

    async def mark_read(self, alert_id: IdLike, by_user_id: str) -> AlertRead:
        aid = _as_uuid(alert_id, "alert id")

        with self.telemetry.operation("alerts", "mark_read", by_user_id, alert_id=str(aid)) as event:
            async with self._unit_of_work() as c:
                alert = await c.alerts.mark_read(aid, by_user_id)
                result = AlertRead.model_validate(alert)
            event.encounter_id = str(result.encounter_id)
        return result

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every unread alert addressed to *user_id* as read."""
        with self.telemetry.operation("alerts", "mark_all_read", user_id, to_user_id=user_id):
            async with self._unit_of_work() as c:
                marked = await c.alerts.mark_all_read(user_id)
        return marked

    async def list_alerts(self, user_id: str, unread_only: bool = False, limit: int = 50) -> list[AlertRead]:
        async with self._read() as c:
            return [AlertRead.model_validate(a) for a in await c.alerts.list(user_id, unread_only, limit)]

    async def unread_count(self, user_id: str) -> int:
        async with self._read() as c:
            return await c.alerts.unread_count(user_id)

    # Health

    async def ping(self) -> bool:
        async with self.session_factory() as session:
            await session.execute(select(1))
        return True


def _route_result(outcome) -> RouteResult:
    return RouteResult(
        encounter=EncounterRead.model_validate(outcome.encounter),
        changed=outcome.changed,
        routing=RoutingRead.model_validate(outcome.routing) if outcome.routing is not None else None,
    )

