"""Tests for versioned clinical section auto-save."""

import asyncio
import uuid

import pytest

from clinic_flow.workflow.errors import NotFoundError, ValidationError
from clinic_flow.workflow.sections import TEMPLATE_IDS, TEMPLATE_LEAF_IDS, validate_section_id


async def test_first_save_creates_section(workflow, encounter):
    result = await workflow.save_section(encounter.id, "hpi", "fever", 1, "nurse-1", "nurse")

    assert result.outcome == "accepted"
    assert result.section.content == "fever"
    assert result.section.last_edit_version == 1
    assert result.section.completed is True
    assert result.section.updated_by == "nurse-1"
    assert result.section.updated_by_role == "nurse"


async def test_save_then_read_back(workflow, encounter):
    await workflow.save_section(encounter.id, "hpi", "fever", 1, "nurse-1")

    sections = {s.section_id: s for s in await workflow.get_sections(encounter.id)}

    assert sections["hpi"].content == "fever"
    assert sections["hpi"].title == "HPI / Subjective / Objective"
    assert sections["hpi"].last_edit_version == 1


async def test_newer_edit_replaces_older(workflow, encounter):
    await workflow.save_section(encounter.id, "plan", "Rest", 1, "doctor-1")
    result = await workflow.save_section(encounter.id, "plan", "Rest and fluids", 2, "doctor-1")

    assert result.outcome == "accepted"
    assert result.section.content == "Rest and fluids"
    assert result.section.last_edit_version == 2


async def test_late_older_edit_is_discarded(workflow, encounter):
    """Edits delivered out of order: version 5 lands, version 4 arrives late."""
    await workflow.save_section(encounter.id, "assessment", "Viral URI", 5, "doctor-1")

    late = await workflow.save_section(encounter.id, "assessment", "Viral UR", 4, "doctor-1")

    assert late.outcome == "discarded"
    assert late.section.content == "Viral URI"
    assert late.section.last_edit_version == 5


async def test_equal_version_is_discarded(workflow, encounter):
    await workflow.save_section(encounter.id, "allergies", "NKDA", 3, "nurse-1")

    again = await workflow.save_section(encounter.id, "allergies", "Penicillin", 3, "nurse-2")

    assert again.outcome == "discarded"
    assert again.section.content == "NKDA"
    assert again.section.updated_by == "nurse-1"


async def test_shuffled_delivery_keeps_highest_version(workflow, encounter):
    results = [
        await workflow.save_section(encounter.id, "physical_exam", f"draft {v}", v, "doctor-1") for v in (3, 1, 2)
    ]

    assert [r.outcome for r in results] == ["accepted", "discarded", "discarded"]
    sections = {s.section_id: s for s in await workflow.get_sections(encounter.id)}
    assert sections["physical_exam"].content == "draft 3"
    assert sections["physical_exam"].last_edit_version == 3


async def test_concurrent_first_saves_keep_highest_version(workflow, encounter):
    """Several writers race to create the same section row."""
    versions = (2, 4, 1, 3)

    results = await asyncio.gather(
        *(workflow.save_section(encounter.id, "assessment", f"draft {v}", v, f"staff-{v}") for v in versions)
    )

    assert {r.outcome for r in results} <= {"accepted", "discarded"}
    assert any(r.outcome == "accepted" for r in results)
    sections = {s.section_id: s for s in await workflow.get_sections(encounter.id)}
    assert sections["assessment"].content == "draft 4"
    assert sections["assessment"].last_edit_version == 4
    assert sections["assessment"].updated_by == "staff-4"

async def test_clearing_content_marks_section_incomplete(workflow, encounter):
    await workflow.save_section(encounter.id, "social_history", "Non-smoker", 1, "nurse-1")
    result = await workflow.save_section(encounter.id, "social_history", "   ", 2, "nurse-1")

    assert result.outcome == "accepted"
    assert result.section.completed is False


async def test_saves_allowed_after_encounter_closes(workflow, encounter):
    await workflow.cancel(encounter.id, "reception-1")

    result = await workflow.save_section(encounter.id, "plan", "Follow up in 1 week", 1, "doctor-1")

    assert result.outcome == "accepted"


@pytest.mark.parametrize("edit_version", [0, -1, True, "3", 2.5])
async def test_invalid_edit_version(workflow, encounter, edit_version):
    with pytest.raises(ValidationError):
        await workflow.save_section(encounter.id, "hpi", "fever", edit_version, "nurse-1")


@pytest.mark.parametrize("section_id", ["", "has space", "x" * 65, "semi;colon"])
async def test_invalid_section_id(workflow, encounter, section_id):
    with pytest.raises(ValidationError):
        await workflow.save_section(encounter.id, section_id, "text", 1, "nurse-1")


def test_section_id_pattern_accepts_template_ids():
    for section_id in TEMPLATE_IDS:
        assert validate_section_id(section_id) == section_id
    assert validate_section_id("custom.addendum-1") == "custom.addendum-1"


async def test_save_for_unknown_encounter(workflow):
    with pytest.raises(NotFoundError):
        await workflow.save_section(uuid.uuid4(), "hpi", "fever", 1, "nurse-1")


async def test_template_shape_for_empty_encounter(workflow, encounter):
    sections = await workflow.get_sections(encounter.id)

    assert sections[0].section_id == "chief_complaint"
    assert sections[-1].section_id == "plan"
    ros = next(s for s in sections if s.section_id == "review_of_systems")
    assert len(ros.subsections) == 17
    assert ros.subsections[0].section_id == "ros_constitutional"
    assert all(s.content == "" and not s.completed for s in sections)


async def test_extra_sections_follow_template(workflow, encounter):
    await workflow.save_section(encounter.id, "wound_care", "Dressing changed", 1, "nurse-1")
    await workflow.save_section(encounter.id, "addendum", "Called pharmacy", 1, "doctor-1")
    await workflow.save_section(encounter.id, "ros_skin", "No rash", 1, "doctor-1")

    sections = await workflow.get_sections(encounter.id)

    assert [s.section_id for s in sections[-2:]] == ["addendum", "wound_care"]
    assert sections[-1].title == "Wound Care"
    ros = next(s for s in sections if s.section_id == "review_of_systems")
    skin = next(s for s in ros.subsections if s.section_id == "ros_skin")
    assert skin.content == "No rash"


async def test_completion_status(workflow, encounter):
    empty = await workflow.section_status(encounter.id)
    assert empty.total_sections == len(TEMPLATE_LEAF_IDS) == 34
    assert empty.completed_sections == 0
    assert empty.completion_percentage == 0.0
    assert empty.last_updated is None

    await workflow.save_section(encounter.id, "chief_complaint", "Cough", 1, "nurse-1")
    await workflow.save_section(encounter.id, "ros_respiratory", "Productive cough", 1, "doctor-1")
    await workflow.save_section(encounter.id, "plan", "", 1, "doctor-1")
    await workflow.save_section(encounter.id, "addendum", "Note", 1, "doctor-2")

    status = await workflow.section_status(encounter.id)

    assert status.total_sections == 35
    assert status.completed_sections == 3
    assert status.completion_percentage == round(3 * 100 / 35, 1)
    assert status.last_updated_by == "doctor-2"
