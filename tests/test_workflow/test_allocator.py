"""Tests for room and bed allocation."""

import asyncio
import uuid

import pytest
from sqlalchemy import update

from clinic_flow.core.models import Encounter, Room, ShortStayBed
from clinic_flow.workflow.errors import (
    ConflictError,
    EncounterClosed,
    NotFoundError,
    ResourceUnavailable,
)
from clinic_flow.workflow.states import EncounterStatus


def _room(rooms_list, room_id):
    return next(r for r in rooms_list if r.id == room_id)


async def test_acquire_marks_room_occupied(workflow, encounter, rooms):
    enc = await workflow.acquire_room(encounter.id, rooms["3"], "nurse-1")

    assert enc.room_id == rooms["3"]
    room = _room(await workflow.list_rooms(), rooms["3"])
    assert room.is_available is False
    assert room.current_encounter_id == encounter.id
    assert room.assigned_at is not None


async def test_second_encounter_cannot_take_occupied_room(workflow, rooms):
    """Two patients, one room: the second gets ResourceUnavailable."""
    first = await workflow.check_in("patient-a", "reception-1")
    second = await workflow.check_in("patient-b", "reception-1")

    await workflow.acquire_room(first.id, rooms["3"], "nurse-1")
    with pytest.raises(ResourceUnavailable) as exc_info:
        await workflow.acquire_room(second.id, rooms["3"], "nurse-2")

    assert exc_info.value.identifier == "3"
    assert (await workflow.get_encounter(second.id)).room_id is None
    assert _room(await workflow.list_rooms(), rooms["3"]).current_encounter_id == first.id


async def test_concurrent_acquire_has_single_winner(workflow, rooms):
    a = await workflow.check_in("patient-a", "reception-1")
    b = await workflow.check_in("patient-b", "reception-1")

    results = await asyncio.gather(
        workflow.acquire_room(a.id, rooms["5"], "nurse-1"),
        workflow.acquire_room(b.id, rooms["5"], "nurse-2"),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], ResourceUnavailable)
    holders = [e.id for e in await workflow.list_encounters() if e.room_id == rooms["5"]]
    assert len(holders) == 1
    assert _room(await workflow.list_rooms(), rooms["5"]).current_encounter_id == holders[0]


async def test_acquiring_held_room_again_is_a_noop(workflow, encounter, rooms):
    await workflow.acquire_room(encounter.id, rooms["1"], "nurse-1")
    before = await workflow.get_encounter(encounter.id)

    after = await workflow.acquire_room(encounter.id, rooms["1"], "nurse-1")

    assert after.room_id == rooms["1"]
    assert after.version == before.version


async def test_acquiring_a_second_room_requires_reassign(workflow, encounter, rooms):
    await workflow.acquire_room(encounter.id, rooms["1"], "nurse-1")

    with pytest.raises(ConflictError):
        await workflow.acquire_room(encounter.id, rooms["2"], "nurse-1")

    assert _room(await workflow.list_rooms(), rooms["2"]).is_available


async def test_unknown_room(workflow, encounter):
    with pytest.raises(NotFoundError):
        await workflow.acquire_room(encounter.id, uuid.uuid4(), "nurse-1")


async def test_closed_encounter_cannot_take_a_room(workflow, encounter, rooms):
    await workflow.cancel(encounter.id, "reception-1")

    with pytest.raises(EncounterClosed):
        await workflow.acquire_room(encounter.id, rooms["1"], "nurse-1")


async def test_reassign_moves_patient(workflow, encounter, rooms):
    await workflow.acquire_room(encounter.id, rooms["1"], "nurse-1")

    enc = await workflow.reassign_room(encounter.id, rooms["4"], "nurse-1")

    assert enc.room_id == rooms["4"]
    listing = await workflow.list_rooms()
    assert _room(listing, rooms["1"]).is_available
    assert _room(listing, rooms["1"]).current_encounter_id is None
    assert _room(listing, rooms["4"]).current_encounter_id == encounter.id


async def test_failed_reassign_keeps_original_room(workflow, encounter, rooms):
    other = await workflow.check_in("patient-b", "reception-1")
    await workflow.acquire_room(other.id, rooms["4"], "nurse-2")
    await workflow.acquire_room(encounter.id, rooms["1"], "nurse-1")

    with pytest.raises(ResourceUnavailable):
        await workflow.reassign_room(encounter.id, rooms["4"], "nurse-1")

    assert (await workflow.get_encounter(encounter.id)).room_id == rooms["1"]
    assert _room(await workflow.list_rooms(), rooms["1"]).current_encounter_id == encounter.id


async def test_reassign_without_a_room_acts_as_acquire(workflow, encounter, rooms):
    enc = await workflow.reassign_room(encounter.id, rooms["6"], "nurse-1")

    assert enc.room_id == rooms["6"]


async def test_release_frees_room(workflow, encounter, rooms):
    await workflow.acquire_room(encounter.id, rooms["2"], "nurse-1")

    enc = await workflow.release_room(encounter.id, "nurse-1")

    assert enc.room_id is None
    assert _room(await workflow.list_rooms(), rooms["2"]).is_available


async def test_release_without_room_is_a_noop(workflow, encounter):
    enc = await workflow.release_room(encounter.id, "nurse-1")

    assert enc.room_id is None
    assert enc.version == encounter.version


async def test_late_release_after_reassign_is_ignored(workflow, encounter, rooms):
    await workflow.acquire_room(encounter.id, rooms["1"], "nurse-1")
    await workflow.reassign_room(encounter.id, rooms["2"], "nurse-1")

    enc = await workflow.release_room(encounter.id, "nurse-1", room_id=rooms["1"])

    assert enc.room_id == rooms["2"]
    assert not _room(await workflow.list_rooms(), rooms["2"]).is_available


async def test_beds_are_allocated_independently_of_rooms(workflow, encounter, rooms, beds):
    await workflow.acquire_room(encounter.id, rooms["1"], "nurse-1")
    enc = await workflow.acquire_bed(encounter.id, beds["SSU-2"], "nurse-1")

    assert enc.room_id == rooms["1"]
    assert enc.bed_id == beds["SSU-2"]
    bed = next(b for b in await workflow.list_beds() if b.id == beds["SSU-2"])
    assert bed.assigned_by == "nurse-1"


async def test_available_only_listing(workflow, encounter, rooms):
    await workflow.acquire_room(encounter.id, rooms["1"], "nurse-1")

    free = await workflow.list_rooms(available_only=True)

    assert rooms["1"] not in {r.id for r in free}
    assert len(free) == 7
    assert [r.room_number for r in free] == ["2", "3", "4", "5", "6", "7", "8"]


async def test_sync_repairs_drift(workflow, session_factory, encounter, rooms, beds):
    await workflow.acquire_room(encounter.id, rooms["1"], "nurse-1")

    # Room 7 marked busy by nobody, room 1 marked free while held, and a
    # cancelled encounter still pointing at bed 1
    closed = await workflow.check_in("patient-gone", "reception-1")
    async with session_factory() as session:
        await session.execute(update(Room).where(Room.id == rooms["7"]).values(is_available=False))
        await session.execute(
            update(Room).where(Room.id == rooms["1"]).values(is_available=True, current_encounter_id=None)
        )
        await session.execute(
            update(Encounter)
            .where(Encounter.id == closed.id)
            .values(status=EncounterStatus.CANCELLED.value, bed_id=beds["SSU-1"])
        )
        await session.execute(
            update(ShortStayBed)
            .where(ShortStayBed.id == beds["SSU-1"])
            .values(is_available=False, current_encounter_id=closed.id)
        )
        await session.commit()

    corrections = await workflow.sync_resource_availability("admin-1")

    fixed = {(c.kind, c.identifier): c for c in corrections}
    assert set(fixed) == {("room", "1"), ("room", "7"), ("bed", "SSU-1")}
    assert fixed[("room", "1")].is_available is False
    assert fixed[("room", "1")].current_encounter_id == encounter.id
    assert fixed[("room", "7")].is_available is True
    assert fixed[("bed", "SSU-1")].is_available is True

    assert (await workflow.get_encounter(closed.id)).bed_id is None
    assert await workflow.sync_resource_availability("admin-1") == []
