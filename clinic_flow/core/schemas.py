"""Pydantic schemas for the encounter workflow API I/O."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from clinic_flow.workflow.states import (
    TIMESTAMP_FIELDS,
    AlertType,
    Department,
    EncounterStatus,
    RoutingPriority,
)


# --- Encounter ---

class EncounterCreate(BaseModel):
    patient_id: str = Field(..., min_length=1, max_length=64)
    chief_complaint: Optional[str] = None
    encounter_type: str = "walk-in"
    triage_priority: str = "green"
    assigned_doctor_id: Optional[str] = None


class StaffAssignment(BaseModel):
    nurse_id: Optional[str] = None
    doctor_id: Optional[str] = None


class TransitionRequest(BaseModel):
    target: EncounterStatus
    expected_version: Optional[int] = Field(None, ge=1)


class EncounterRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: str
    status: EncounterStatus
    encounter_type: str
    chief_complaint: Optional[str] = None
    triage_priority: str
    room_id: Optional[uuid.UUID] = None
    bed_id: Optional[uuid.UUID] = None
    current_department: Optional[Department] = None
    receptionist_id: Optional[str] = None
    assigned_nurse_id: Optional[str] = None
    assigned_doctor_id: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    in_room_at: Optional[datetime] = None
    vitals_completed_at: Optional[datetime] = None
    nurse_started_at: Optional[datetime] = None
    waiting_for_doctor_at: Optional[datetime] = None
    doctor_started_at: Optional[datetime] = None
    lab_ordered_at: Optional[datetime] = None
    imaging_ordered_at: Optional[datetime] = None
    pharmacy_ordered_at: Optional[datetime] = None
    returned_to_nurse_at: Optional[datetime] = None
    ready_for_checkout_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int


class TransitionResult(BaseModel):
    encounter_id: uuid.UUID
    status: EncounterStatus
    previous_status: EncounterStatus
    changed: bool
    version: int
    timestamps: dict[str, Optional[datetime]]

    @classmethod
    def from_encounter(cls, encounter, previous: EncounterStatus, changed: bool) -> "TransitionResult":
        return cls(
            encounter_id=encounter.id,
            status=EncounterStatus(encounter.status),
            previous_status=previous,
            changed=changed,
            version=encounter.version,
            timestamps={name: getattr(encounter, name) for name in TIMESTAMP_FIELDS},
        )


# --- Rooms and beds ---

class ResourceRequest(BaseModel):
    resource_id: uuid.UUID


class RoomRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    room_number: str
    room_name: Optional[str] = None
    room_type: str
    is_available: bool
    current_encounter_id: Optional[uuid.UUID] = None
    assigned_at: Optional[datetime] = None


class BedRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    bed_number: str
    bed_name: Optional[str] = None
    is_available: bool
    current_encounter_id: Optional[uuid.UUID] = None
    assigned_at: Optional[datetime] = None
    assigned_by: Optional[str] = None


class ResourceCorrection(BaseModel):
    kind: str
    resource_id: uuid.UUID
    identifier: str
    was_available: bool
    is_available: bool
    current_encounter_id: Optional[uuid.UUID] = None


# --- Department routing ---

class RouteRequest(BaseModel):
    department: Department
    priority: RoutingPriority = RoutingPriority.ROUTINE
    notes: Optional[str] = None


class RoutingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    encounter_id: uuid.UUID
    department: Department
    status: str
    priority: RoutingPriority
    notes: Optional[str] = None
    routed_by: Optional[str] = None
    routed_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class RouteResult(BaseModel):
    encounter: EncounterRead
    changed: bool
    routing: Optional[RoutingRead] = None


class RoutingCancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


# --- Clinical sections ---

class SectionSave(BaseModel):
    content: str = ""
    edit_version: int = Field(..., ge=1)
    actor_role: Optional[str] = None


class SectionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    encounter_id: uuid.UUID
    section_id: str
    content: str
    completed: bool
    last_edit_version: int
    updated_by: Optional[str] = None
    updated_by_role: Optional[str] = None
    updated_at: Optional[datetime] = None


class SectionView(BaseModel):
    """One entry of the note template, merged with whatever has been saved."""

    section_id: str
    title: str
    content: str = ""
    completed: bool = False
    last_edit_version: int = 0
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    subsections: list["SectionView"] = Field(default_factory=list)


class SaveResult(BaseModel):
    outcome: Literal["accepted", "discarded"]
    section: SectionRead


class SectionStatus(BaseModel):
    encounter_id: uuid.UUID
    total_sections: int
    completed_sections: int
    completion_percentage: float
    last_updated: Optional[datetime] = None
    last_updated_by: Optional[str] = None


# --- Alerts ---

class AlertCreate(BaseModel):
    to_user_id: str = Field(..., min_length=1, max_length=64)
    encounter_id: uuid.UUID
    alert_type: AlertType = AlertType.GENERAL
    message: Optional[str] = None


class AlertRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    encounter_id: uuid.UUID
    from_user_id: Optional[str] = None
    to_user_id: str
    alert_type: AlertType
    message: Optional[str] = None
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime] = None


class AlertList(BaseModel):
    alerts: list[AlertRead]
    unread_count: int
    poll_interval_seconds: int


class AlertDoctorRequest(BaseModel):
    message: Optional[str] = None
    doctor_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class AlertsMarked(BaseModel):
    marked: int
