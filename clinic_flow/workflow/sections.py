"""Versioned auto-save of clinical note sections.

Saves never wait on a lock. Each (encounter, section) row keeps the highest
``edit_version`` accepted so far and a save only lands when it beats it, so a
late delivery of an older edit cannot overwrite a newer one. Two people typing
into the same section resolve by last accepted write; there is no merge.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_flow.core.models import ClinicalSection, Encounter
from clinic_flow.core.repository import SectionRepository
from clinic_flow.core.schemas import SectionStatus, SectionView
from clinic_flow.workflow.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

SECTION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")


@dataclass(frozen=True)
class TemplateSection:
    section_id: str
    title: str
    subsections: tuple["TemplateSection", ...] = ()


def _ros(section_id: str, title: str) -> TemplateSection:
    return TemplateSection(f"ros_{section_id}", title)


# History & physical note layout shown to every role
DEFAULT_SECTIONS: tuple[TemplateSection, ...] = (
    TemplateSection("chief_complaint", "Chief Complaint"),
    TemplateSection("hpi", "HPI / Subjective / Objective"),
    TemplateSection("past_medical_history", "Past Medical History"),
    TemplateSection("past_surgical_history", "Past Surgical History"),
    TemplateSection("health_maintenance", "Health Maintenance"),
    TemplateSection("immunization_history", "Immunization History"),
    TemplateSection("home_medications", "Home Medications"),
    TemplateSection("allergies", "Allergies"),
    TemplateSection("social_history", "Social History"),
    TemplateSection("family_history", "Family History"),
    TemplateSection("primary_care_provider", "Primary Care Provider"),
    TemplateSection(
        "review_of_systems",
        "Review of Systems",
        (
            _ros("constitutional", "Constitutional"),
            _ros("allergic", "Allergic / Immunologic"),
            _ros("head", "Head"),
            _ros("eyes", "Eyes"),
            _ros("ent", "Ears, Nose, Mouth and Throat"),
            _ros("neck", "Neck"),
            _ros("breasts", "Breasts"),
            _ros("respiratory", "Respiratory"),
            _ros("cardiac", "Cardiac/Peripheral Vascular"),
            _ros("gi", "Gastrointestinal"),
            _ros("gu", "Genitourinary"),
            _ros("musculoskeletal", "Musculoskeletal"),
            _ros("skin", "Skin"),
            _ros("neuro", "Neurological"),
            _ros("psych", "Psychiatric"),
            _ros("endo", "Endocrine"),
            _ros("heme", "Hematologic/Lymphatic"),
        ),
    ),
    TemplateSection("vital_signs", "Vital Signs"),
    TemplateSection("physical_exam", "Physical Exam"),
    TemplateSection("lab_results", "Lab Results"),
    TemplateSection("imaging_results", "Imaging Results"),
    TemplateSection("assessment", "Assessment/Problem List"),
    TemplateSection("plan", "Plan"),
)


def _leaves(sections: tuple[TemplateSection, ...]) -> list[str]:
    ids: list[str] = []
    for section in sections:
        if section.subsections:
            ids.extend(_leaves(section.subsections))
        else:
            ids.append(section.section_id)
    return ids


def _all_ids(sections: tuple[TemplateSection, ...]) -> set[str]:
    ids: set[str] = set()
    for section in sections:
        ids.add(section.section_id)
        ids |= _all_ids(section.subsections)
    return ids


TEMPLATE_LEAF_IDS: tuple[str, ...] = tuple(_leaves(DEFAULT_SECTIONS))
TEMPLATE_IDS: frozenset[str] = frozenset(_all_ids(DEFAULT_SECTIONS))


class SaveOutcome(str, Enum):
    ACCEPTED = "accepted"
    DISCARDED = "discarded"


@dataclass
class SaveResult:
    outcome: SaveOutcome
    section: ClinicalSection

    @property
    def accepted(self) -> bool:
        return self.outcome == SaveOutcome.ACCEPTED


def validate_section_id(section_id: str) -> str:
    if not section_id or not SECTION_ID_PATTERN.match(section_id):
        raise ValidationError(
            "Section id must be 1-64 characters of letters, digits, '_', '-' or '.'",
            section_id=section_id,
        )
    return section_id


def is_completed(content: Optional[str]) -> bool:
    return bool(content and content.strip())


class SectionAutoSaveCoordinator:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.sections = SectionRepository(session)

    async def _ensure_encounter(self, encounter_id: uuid.UUID) -> None:
        if await self.session.get(Encounter, encounter_id) is None:
            raise NotFoundError("encounter", encounter_id)

    async def save_section(
        self,
        encounter_id: uuid.UUID,
        section_id: str,
        content: str,
        edit_version: int,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
    ) -> SaveResult:
        """Store *content* if *edit_version* is newer than what is stored.

        Returns ``DISCARDED`` with the stored row when it is not; that is a
        normal outcome, not an error.
        """
        validate_section_id(section_id)
        if isinstance(edit_version, bool) or not isinstance(edit_version, int) or edit_version < 1:
            raise ValidationError("edit_version must be a positive integer", edit_version=edit_version)
        content = content or ""
        await self._ensure_encounter(encounter_id)

        values = dict(
            content=content,
            completed=is_completed(content),
            updated_by=actor_id,
            updated_by_role=actor_role,
            updated_at=datetime.now(timezone.utc),
        )

        accepted = await self.sections.update_if_newer(encounter_id, section_id, edit_version, **values)
        if not accepted and await self.sections.get(encounter_id, section_id) is None:
            try:
                async with self.session.begin_nested():
                    await self.sections.insert(
                        encounter_id=encounter_id,
                        section_id=section_id,
                        last_edit_version=edit_version,
                        **values,
                    )
                accepted = True
            except IntegrityError:
                # Another writer created the row first; fall back to the version compare
                accepted = await self.sections.update_if_newer(encounter_id, section_id, edit_version, **values)

        row = await self.sections.get(encounter_id, section_id)
        outcome = SaveOutcome.ACCEPTED if accepted else SaveOutcome.DISCARDED
        if not accepted:
            logger.debug(
                "Discarded %s/%s edit %d (stored %d)",
                encounter_id, section_id, edit_version, row.last_edit_version,
            )
        return SaveResult(outcome, row)

    async def get_sections(self, encounter_id: uuid.UUID) -> list[SectionView]:
        """The note template merged with saved rows, then any extra saved sections."""
        await self._ensure_encounter(encounter_id)
        saved = {row.section_id: row for row in await self.sections.list_by_encounter(encounter_id)}

        def build(template: TemplateSection) -> SectionView:
            row = saved.get(template.section_id)
            view = _view(template.section_id, template.title, row)
            view.subsections = [build(sub) for sub in template.subsections]
            return view

        views = [build(t) for t in DEFAULT_SECTIONS]
        extras = sorted(sid for sid in saved if sid not in TEMPLATE_IDS)
        views.extend(_view(sid, sid.replace("_", " ").title(), saved[sid]) for sid in extras)
        return views

    async def completion_status(self, encounter_id: uuid.UUID) -> SectionStatus:
        await self._ensure_encounter(encounter_id)
        rows = await self.sections.list_by_encounter(encounter_id)
        by_id = {row.section_id: row for row in rows}

        counted = list(TEMPLATE_LEAF_IDS) + sorted(sid for sid in by_id if sid not in TEMPLATE_IDS)
        completed = sum(1 for sid in counted if sid in by_id and by_id[sid].completed)
        total = len(counted)
        latest = rows[0] if rows else None
        return SectionStatus(
            encounter_id=encounter_id,
            total_sections=total,
            completed_sections=completed,
            completion_percentage=round(completed * 100.0 / total, 1) if total else 0.0,
            last_updated=latest.updated_at if latest else None,
            last_updated_by=latest.updated_by if latest else None,
        )


def _view(section_id: str, title: str, row: Optional[ClinicalSection]) -> SectionView:
    if row is None:
        return SectionView(section_id=section_id, title=title)
    return SectionView(
        section_id=section_id,
        title=title,
        content=row.content,
        completed=row.completed,
        last_edit_version=row.last_edit_version,
        updated_by=row.updated_by,
        updated_at=row.updated_at,
    )
