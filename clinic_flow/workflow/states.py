"""Encounter lifecycle statuses, departments and the transition table."""

from __future__ import annotations

from enum import Enum


class EncounterStatus(str, Enum):
    """Lifecycle status of a clinic encounter."""

    CHECKED_IN = "checked_in"
    IN_ROOM = "in_room"
    VITALS_COMPLETE = "vitals_complete"
    WITH_NURSE = "with_nurse"
    WAITING_FOR_DOCTOR = "waiting_for_doctor"
    WITH_DOCTOR = "with_doctor"
    AT_LAB = "at_lab"
    AT_IMAGING = "at_imaging"
    AT_PHARMACY = "at_pharmacy"
    READY_FOR_CHECKOUT = "ready_for_checkout"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Department(str, Enum):
    """Service departments an encounter can be handed to."""

    LAB = "lab"
    IMAGING = "imaging"
    PHARMACY = "pharmacy"
    RECEPTIONIST = "receptionist"


class ResourceKind(str, Enum):
    """Physical resources held exclusively by one encounter."""

    ROOM = "room"
    BED = "bed"


class RoutingPriority(str, Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    STAT = "stat"


class RoutingStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AlertType(str, Enum):
    PATIENT_READY = "patient_ready"
    VITALS_CRITICAL = "vitals_critical"
    URGENT = "urgent"
    GENERAL = "general"


TERMINAL_STATUSES: frozenset[EncounterStatus] = frozenset(
    {EncounterStatus.COMPLETED, EncounterStatus.CANCELLED}
)

# Departments that move the encounter into a dedicated "At X" status.
# Receptionist routing is a marker only and leaves the status untouched.
DEPARTMENT_STATUS: dict[Department, EncounterStatus] = {
    Department.LAB: EncounterStatus.AT_LAB,
    Department.IMAGING: EncounterStatus.AT_IMAGING,
    Department.PHARMACY: EncounterStatus.AT_PHARMACY,
}

STATUS_DEPARTMENT: dict[EncounterStatus, Department] = {
    status: dept for dept, status in DEPARTMENT_STATUS.items()
}

_DEPARTMENT_TARGETS = frozenset(DEPARTMENT_STATUS.values())

# Forward edges only; Cancelled is reachable from every non-terminal status.
_TRANSITIONS: dict[EncounterStatus, frozenset[EncounterStatus]] = {
    EncounterStatus.CHECKED_IN: frozenset({EncounterStatus.IN_ROOM}),
    EncounterStatus.IN_ROOM: frozenset({EncounterStatus.VITALS_COMPLETE}),
    EncounterStatus.VITALS_COMPLETE: frozenset({EncounterStatus.WITH_NURSE}),
    EncounterStatus.WITH_NURSE: frozenset(
        {
            EncounterStatus.WAITING_FOR_DOCTOR,
            EncounterStatus.READY_FOR_CHECKOUT,
            *_DEPARTMENT_TARGETS,
        }
    ),
    EncounterStatus.WAITING_FOR_DOCTOR: frozenset({EncounterStatus.WITH_DOCTOR}),
    EncounterStatus.WITH_DOCTOR: frozenset(
        {
            EncounterStatus.WITH_NURSE,
            EncounterStatus.READY_FOR_CHECKOUT,
            *_DEPARTMENT_TARGETS,
        }
    ),
    EncounterStatus.AT_LAB: frozenset({EncounterStatus.WITH_NURSE}),
    EncounterStatus.AT_IMAGING: frozenset({EncounterStatus.WITH_NURSE}),
    EncounterStatus.AT_PHARMACY: frozenset({EncounterStatus.WITH_NURSE}),
    EncounterStatus.READY_FOR_CHECKOUT: frozenset({EncounterStatus.COMPLETED}),
}

# Phase timestamp column stamped the first time a status is entered.
PHASE_TIMESTAMPS: dict[EncounterStatus, str] = {
    EncounterStatus.CHECKED_IN: "checked_in_at",
    EncounterStatus.IN_ROOM: "in_room_at",
    EncounterStatus.VITALS_COMPLETE: "vitals_completed_at",
    EncounterStatus.WITH_NURSE: "nurse_started_at",
    EncounterStatus.WAITING_FOR_DOCTOR: "waiting_for_doctor_at",
    EncounterStatus.WITH_DOCTOR: "doctor_started_at",
    EncounterStatus.AT_LAB: "lab_ordered_at",
    EncounterStatus.AT_IMAGING: "imaging_ordered_at",
    EncounterStatus.AT_PHARMACY: "pharmacy_ordered_at",
    EncounterStatus.READY_FOR_CHECKOUT: "ready_for_checkout_at",
    EncounterStatus.COMPLETED: "completed_at",
    EncounterStatus.CANCELLED: "cancelled_at",
}

# Second visit to the nurse (after a doctor or department) gets its own stamp.
RETURN_TO_NURSE_TIMESTAMP = "returned_to_nurse_at"

TIMESTAMP_FIELDS: tuple[str, ...] = (
    *PHASE_TIMESTAMPS.values(),
    RETURN_TO_NURSE_TIMESTAMP,
)


def is_terminal(status: EncounterStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: EncounterStatus, target: EncounterStatus) -> bool:
    """Return True when *target* is reachable from *current* in one step."""
    if current in TERMINAL_STATUSES:
        return False
    if target == EncounterStatus.CANCELLED:
        return True
    return target in _TRANSITIONS.get(current, frozenset())


def allowed_targets(current: EncounterStatus) -> list[EncounterStatus]:
    """List the statuses reachable from *current*, in declaration order."""
    return [s for s in EncounterStatus if s != current and can_transition(current, s)]
