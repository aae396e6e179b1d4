"""Tests for encounter status transitions through the workflow engine."""

import asyncio
import uuid

import pytest

from clinic_flow.core.repository import AuditRepository
from clinic_flow.workflow.errors import (
    EncounterClosed,
    IllegalTransition,
    NotFoundError,
    StaleState,
    ValidationError,
)
from clinic_flow.workflow.states import Department, EncounterStatus

S = EncounterStatus


async def test_check_in_stamps_checked_in(workflow):
    enc = await workflow.check_in("patient-42", "reception-1", encounter_type="appointment")

    assert enc.status == S.CHECKED_IN
    assert enc.checked_in_at is not None
    assert enc.receptionist_id == "reception-1"
    assert enc.room_id is None
    assert enc.current_department is None
    assert enc.version >= 1


async def test_check_in_requires_patient(workflow):
    with pytest.raises(ValidationError):
        await workflow.check_in("   ", "reception-1")


async def test_full_lifecycle_with_lab_visit(workflow, encounter, rooms):
    """Check-in to completion, with one lab round trip and automatic room release."""
    eid = encounter.id
    await workflow.acquire_room(eid, rooms["1"], "nurse-1")

    for status in (S.IN_ROOM, S.VITALS_COMPLETE, S.WITH_NURSE, S.WAITING_FOR_DOCTOR, S.WITH_DOCTOR, S.AT_LAB):
        result = await workflow.transition(eid, status, "staff-1")
        assert result.changed
        assert result.status == status

    at_lab = await workflow.get_encounter(eid)
    assert at_lab.current_department == Department.LAB

    back = await workflow.return_from_department(eid, "lab-tech-1")
    assert back.encounter.status == S.WITH_NURSE
    assert back.encounter.current_department is None

    await workflow.transition(eid, S.READY_FOR_CHECKOUT, "nurse-1")
    done = await workflow.transition(eid, S.COMPLETED, "reception-1")
    assert done.status == S.COMPLETED

    final = await workflow.get_encounter(eid)
    ordered = [
        final.checked_in_at,
        final.in_room_at,
        final.vitals_completed_at,
        final.nurse_started_at,
        final.waiting_for_doctor_at,
        final.doctor_started_at,
        final.lab_ordered_at,
        final.returned_to_nurse_at,
        final.ready_for_checkout_at,
        final.completed_at,
    ]
    assert all(ts is not None for ts in ordered)
    assert ordered == sorted(ordered)
    assert final.imaging_ordered_at is None
    assert final.pharmacy_ordered_at is None
    assert final.cancelled_at is None

    # Completing released the room
    assert final.room_id is None
    room = next(r for r in await workflow.list_rooms() if r.id == rooms["1"])
    assert room.is_available
    assert room.current_encounter_id is None


async def test_reentering_current_status_is_a_noop(workflow, encounter):
    first = await workflow.transition(encounter.id, S.IN_ROOM, "nurse-1")
    before = await workflow.get_encounter(encounter.id)

    again = await workflow.transition(encounter.id, S.IN_ROOM, "nurse-2")

    after = await workflow.get_encounter(encounter.id)
    assert again.changed is False
    assert again.status == S.IN_ROOM
    assert again.version == first.version
    assert after.in_room_at == before.in_room_at
    assert after.version == before.version


async def test_illegal_transition_is_rejected(workflow, encounter):
    with pytest.raises(IllegalTransition) as exc_info:
        await workflow.transition(encounter.id, S.WITH_DOCTOR, "doctor-1")

    assert exc_info.value.error_code == "illegal_transition"
    assert not exc_info.value.retryable
    unchanged = await workflow.get_encounter(encounter.id)
    assert unchanged.status == S.CHECKED_IN
    assert unchanged.doctor_started_at is None


async def test_unknown_encounter(workflow):
    with pytest.raises(NotFoundError):
        await workflow.transition(uuid.uuid4(), S.IN_ROOM, "nurse-1")


async def test_malformed_encounter_id(workflow):
    with pytest.raises(ValidationError):
        await workflow.transition("room-three", S.IN_ROOM, "nurse-1")


async def test_expected_version_mismatch_is_stale(workflow, encounter):
    with pytest.raises(StaleState) as exc_info:
        await workflow.transition(encounter.id, S.IN_ROOM, "nurse-1", expected_version=encounter.version + 3)
    assert exc_info.value.retryable

    ok = await workflow.transition(encounter.id, S.IN_ROOM, "nurse-1", expected_version=encounter.version)
    assert ok.status == S.IN_ROOM
    assert ok.version > encounter.version


async def test_concurrent_transitions_from_same_version_have_one_winner(workflow, encounter):
    results = await asyncio.gather(
        workflow.transition(encounter.id, S.IN_ROOM, "nurse-1", expected_version=encounter.version),
        workflow.transition(encounter.id, S.CANCELLED, "reception-1", expected_version=encounter.version),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], StaleState)

    final = await workflow.get_encounter(encounter.id)
    assert final.status == winners[0].status


async def test_closed_encounter_cannot_move(workflow, encounter):
    await workflow.cancel(encounter.id, "reception-1")

    with pytest.raises(EncounterClosed):
        await workflow.transition(encounter.id, S.IN_ROOM, "nurse-1")

    # Repeating the terminal status is still a no-op
    again = await workflow.transition(encounter.id, S.CANCELLED, "reception-1")
    assert again.changed is False


async def test_cancel_releases_room_and_bed(workflow, encounter, rooms, beds, advance):
    await workflow.acquire_room(encounter.id, rooms["2"], "nurse-1")
    await workflow.acquire_bed(encounter.id, beds["SSU-1"], "nurse-1")
    await advance(encounter.id, S.IN_ROOM)

    result = await workflow.cancel(encounter.id, "doctor-1")

    assert result.status == S.CANCELLED
    assert result.timestamps["cancelled_at"] is not None
    final = await workflow.get_encounter(encounter.id)
    assert final.room_id is None
    assert final.bed_id is None
    assert all(r.is_available for r in await workflow.list_rooms())
    assert all(b.is_available for b in await workflow.list_beds())


async def test_cancel_closes_open_department_visit(workflow, with_doctor):
    await workflow.route_to(with_doctor.id, Department.IMAGING, "doctor-1")

    await workflow.cancel(with_doctor.id, "doctor-1")

    final = await workflow.get_encounter(with_doctor.id)
    assert final.current_department is None
    history = await workflow.routing_history(with_doctor.id)
    assert [h.status for h in history] == ["cancelled"]


async def test_doctor_can_send_patient_back_to_nurse(workflow, with_doctor):
    result = await workflow.transition(with_doctor.id, S.WITH_NURSE, "doctor-1")

    assert result.status == S.WITH_NURSE
    assert result.timestamps["returned_to_nurse_at"] is not None


async def test_direct_transition_to_department_claims_routing(workflow, with_nurse):
    await workflow.transition(with_nurse.id, S.AT_PHARMACY, "nurse-1")

    enc = await workflow.get_encounter(with_nurse.id)
    assert enc.current_department == Department.PHARMACY
    history = await workflow.routing_history(with_nurse.id)
    assert len(history) == 1
    assert history[0].department == Department.PHARMACY


async def test_assign_nurse_raises_patient_ready_alert(workflow, encounter):
    enc = await workflow.assign_staff(encounter.id, "reception-1", nurse_id="nurse-7", doctor_id="doctor-3")

    assert enc.assigned_nurse_id == "nurse-7"
    assert enc.assigned_doctor_id == "doctor-3"
    alerts = await workflow.list_alerts("nurse-7", unread_only=True)
    assert len(alerts) == 1
    assert alerts[0].alert_type.value == "patient_ready"

    # Re-assigning the same nurse does not alert again
    await workflow.assign_staff(encounter.id, "reception-1", nurse_id="nurse-7")
    assert await workflow.unread_count("nurse-7") == 1


async def test_assign_staff_needs_someone(workflow, encounter):
    with pytest.raises(ValidationError):
        await workflow.assign_staff(encounter.id, "reception-1")


async def test_list_encounters_hides_closed_ones(workflow, encounter):
    other = await workflow.check_in("patient-002", "reception-1")
    await workflow.cancel(other.id, "reception-1")

    active = await workflow.list_encounters()
    everything = await workflow.list_encounters(active_only=False)

    assert [e.id for e in active] == [encounter.id]
    assert {e.id for e in everything} == {encounter.id, other.id}
    cancelled = await workflow.list_encounters(active_only=False, status=S.CANCELLED)
    assert [e.id for e in cancelled] == [other.id]


async def test_only_real_changes_are_audited(workflow, encounter, session_factory):
    await workflow.transition(encounter.id, S.IN_ROOM, "nurse-1")
    await workflow.transition(encounter.id, S.IN_ROOM, "nurse-1")

    async with session_factory() as session:
        logs = await AuditRepository(session).get_by_resource("encounter", str(encounter.id))

    assert sorted(log.action for log in logs) == ["check_in", "transition"]
