"""Exclusive allocation of exam rooms and short-stay beds to encounters.

A resource row and the encounter that holds it always change together inside
the caller's transaction: ``is_available`` flips to False exactly when the
encounter's ``room_id``/``bed_id`` points at the resource, and back again on
release. Resource rows are locked with ``SELECT ... FOR UPDATE`` in id order;
the engine additionally serializes on an in-process lock per resource.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_flow.core.models import Encounter
from clinic_flow.core.repository import EncounterRepository, ResourceRepository
from clinic_flow.workflow.errors import (
    ConflictError,
    EncounterClosed,
    NotFoundError,
    ResourceUnavailable,
)
from clinic_flow.workflow.states import EncounterStatus, ResourceKind, is_terminal

logger = logging.getLogger(__name__)

_HOLDER_ATTR = {ResourceKind.ROOM: "room_id", ResourceKind.BED: "bed_id"}


@dataclass
class Correction:
    """A resource row whose availability disagreed with the encounter table."""

    kind: ResourceKind
    resource_id: uuid.UUID
    identifier: str
    was_available: bool
    is_available: bool
    current_encounter_id: Optional[uuid.UUID]


def held_resource(encounter: Encounter, kind: ResourceKind) -> Optional[uuid.UUID]:
    return getattr(encounter, _HOLDER_ATTR[kind])


class ResourceAllocator:
    """Acquire, release and reassign rooms and beds inside one transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _repo(self, kind: ResourceKind) -> ResourceRepository:
        return ResourceRepository(self.session, kind)

    async def _lock(self, kind: ResourceKind, *resource_ids: uuid.UUID):
        rows = await self._repo(kind).get_many_for_update([r for r in resource_ids if r is not None])
        for rid in resource_ids:
            if rid is not None and rid not in rows:
                raise NotFoundError(kind.value, rid)
        return rows

    @staticmethod
    def _ensure_open(encounter: Encounter) -> None:
        status = EncounterStatus(encounter.status)
        if is_terminal(status):
            raise EncounterClosed(encounter.id, status.value)

    @staticmethod
    def _bind(encounter: Encounter, resource, kind: ResourceKind, actor_id: Optional[str]) -> None:
        now = datetime.now(timezone.utc)
        resource.is_available = False
        resource.current_encounter_id = encounter.id
        resource.assigned_at = now
        if kind == ResourceKind.BED:
            resource.assigned_by = actor_id
        setattr(encounter, _HOLDER_ATTR[kind], resource.id)

    @staticmethod
    def _unbind(encounter: Encounter, resource, kind: ResourceKind) -> None:
        if resource is not None and resource.current_encounter_id in (None, encounter.id):
            resource.is_available = True
            resource.current_encounter_id = None
            resource.assigned_at = None
            if kind == ResourceKind.BED:
                resource.assigned_by = None
        setattr(encounter, _HOLDER_ATTR[kind], None)

    async def acquire(
        self,
        encounter: Encounter,
        resource_id: uuid.UUID,
        kind: ResourceKind,
        actor_id: Optional[str] = None,
    ) -> bool:
        """Bind *resource_id* to *encounter*.

        Returns False when the encounter already holds that resource (no-op).
        Raises ``ConflictError`` if it holds a different one of the same kind;
        switching resources goes through ``reassign``.
        """
        current = held_resource(encounter, kind)
        if current == resource_id:
            return False
        self._ensure_open(encounter)
        if current is not None:
            raise ConflictError(
                f"Encounter already holds a {kind.value}; reassign it instead",
                encounter_id=encounter.id,
                held=current,
            )

        rows = await self._lock(kind, resource_id)
        resource = rows[resource_id]
        if not resource.is_available:
            raise ResourceUnavailable(kind.value, resource.identifier)

        self._bind(encounter, resource, kind, actor_id)
        await self.session.flush()
        logger.debug("%s %s acquired by encounter %s", kind.value, resource.identifier, encounter.id)
        return True

    async def release(
        self,
        encounter: Encounter,
        kind: ResourceKind,
        resource_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """Free the resource held by *encounter*.

        A no-op returning False when the encounter holds nothing of *kind*, or
        when *resource_id* is given and is no longer the one it holds (a late
        release after a reassignment).
        """
        current = held_resource(encounter, kind)
        if current is None or (resource_id is not None and resource_id != current):
            return False

        rows = await self._repo(kind).get_many_for_update([current])
        self._unbind(encounter, rows.get(current), kind)
        await self.session.flush()
        logger.debug("%s %s released by encounter %s", kind.value, current, encounter.id)
        return True

    async def release_all(self, encounter: Encounter) -> list[ResourceKind]:
        released = []
        for kind in ResourceKind:
            if await self.release(encounter, kind):
                released.append(kind)
        return released

    async def reassign(
        self,
        encounter: Encounter,
        new_resource_id: uuid.UUID,
        kind: ResourceKind,
        actor_id: Optional[str] = None,
    ) -> Optional[uuid.UUID]:
        """Swap the held resource for *new_resource_id*; returns the old id.

        Both rows are locked before anything changes, so a failure leaves the
        encounter still holding its original resource.
        """
        self._ensure_open(encounter)
        old_id = held_resource(encounter, kind)
        if old_id == new_resource_id:
            return old_id

        rows = await self._lock(kind, new_resource_id, old_id)
        new_resource = rows[new_resource_id]
        if not new_resource.is_available:
            raise ResourceUnavailable(kind.value, new_resource.identifier)

        if old_id is not None:
            self._unbind(encounter, rows.get(old_id), kind)
        self._bind(encounter, new_resource, kind, actor_id)
        await self.session.flush()
        logger.debug(
            "Encounter %s moved from %s %s to %s",
            encounter.id, kind.value, old_id, new_resource.identifier,
        )
        return old_id

    async def list_resources(self, kind: ResourceKind, available_only: bool = False) -> Sequence:
        return await self._repo(kind).list(available_only=available_only)

    async def sync_availability(self) -> list[Correction]:
        """Recompute every resource's availability from the encounter table.

        Encounters that reached a terminal status while still referencing a
        resource lose the reference.
        """
        corrections: list[Correction] = []
        encounters = EncounterRepository(self.session)

        for kind in ResourceKind:
            repo = self._repo(kind)
            holders: dict[uuid.UUID, uuid.UUID] = {}
            for encounter_id, resource_id, status in await encounters.list_resource_holders(kind):
                if is_terminal(EncounterStatus(status)):
                    encounter = await encounters.get_for_update(encounter_id)
                    setattr(encounter, _HOLDER_ATTR[kind], None)
                    continue
                holders[resource_id] = encounter_id

            resources = await repo.list()
            await repo.get_many_for_update([r.id for r in resources])
            for resource in resources:
                holder = holders.get(resource.id)
                should_be_available = holder is None
                if resource.is_available == should_be_available and resource.current_encounter_id == holder:
                    continue
                corrections.append(
                    Correction(
                        kind=kind,
                        resource_id=resource.id,
                        identifier=resource.identifier,
                        was_available=resource.is_available,
                        is_available=should_be_available,
                        current_encounter_id=holder,
                    )
                )
                resource.is_available = should_be_available
                resource.current_encounter_id = holder
                if should_be_available:
                    resource.assigned_at = None

        await self.session.flush()
        if corrections:
            logger.info("Corrected availability of %d rooms/beds", len(corrections))
        return corrections
