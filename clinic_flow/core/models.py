"""SQLAlchemy 2.0 async models for the encounter workflow schema."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.types import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from clinic_flow.workflow.states import (
    EncounterStatus,
    RoutingPriority,
    RoutingStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class Base(DeclarativeBase):
    pass


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    room_number: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    room_name: Mapped[str | None] = mapped_column(String(100))
    room_type: Mapped[str] = mapped_column(String(50), default="exam")
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Mirror of encounters.room_id; no FK so the two tables do not form a cycle.
    current_encounter_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def identifier(self) -> str:
        return self.room_number

    __table_args__ = (
        Index("ix_rooms_is_available", "is_available"),
    )


class ShortStayBed(Base):
    __tablename__ = "short_stay_beds"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    bed_number: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    bed_name: Mapped[str | None] = mapped_column(String(50))
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    current_encounter_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    assigned_by: Mapped[str | None] = mapped_column(String(64))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def identifier(self) -> str:
        return self.bed_number

    __table_args__ = (
        Index("ix_short_stay_beds_is_available", "is_available"),
    )


class Encounter(Base):
    __tablename__ = "encounters"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    # Patients and staff live in collaborator systems; only their ids are kept here.
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    encounter_type: Mapped[str] = mapped_column(String(30), default="walk-in")
    chief_complaint: Mapped[str | None] = mapped_column(Text)
    triage_priority: Mapped[str] = mapped_column(String(10), default="green")
    status: Mapped[str] = mapped_column(String(30), default=EncounterStatus.CHECKED_IN.value, nullable=False)

    room_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("rooms.id", ondelete="SET NULL"))
    bed_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("short_stay_beds.id", ondelete="SET NULL"))
    current_department: Mapped[str | None] = mapped_column(String(20))

    receptionist_id: Mapped[str | None] = mapped_column(String(64))
    assigned_nurse_id: Mapped[str | None] = mapped_column(String(64))
    assigned_doctor_id: Mapped[str | None] = mapped_column(String(64))

    # Phase timestamps, each stamped once
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    in_room_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    vitals_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    nurse_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    waiting_for_doctor_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    doctor_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    lab_ordered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    imaging_ordered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    pharmacy_ordered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    returned_to_nurse_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ready_for_checkout_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("room_id", name="uq_encounters_room_id"),
        UniqueConstraint("bed_id", name="uq_encounters_bed_id"),
        Index("ix_encounters_patient_id", "patient_id"),
        Index("ix_encounters_status", "status"),
        Index("ix_encounters_nurse", "assigned_nurse_id"),
        Index("ix_encounters_doctor", "assigned_doctor_id"),
    )


class ClinicalSection(Base):
    __tablename__ = "clinical_sections"

    encounter_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("encounters.id", ondelete="CASCADE"), primary_key=True
    )
    section_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_edit_version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(64))
    updated_by_role: Mapped[str | None] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_clinical_sections_encounter", "encounter_id"),
    )


class Alert(Base):
    __tablename__ = "alerts"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    encounter_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("encounters.id", ondelete="CASCADE"), nullable=False
    )
    from_user_id: Mapped[str | None] = mapped_column(String(64))
    to_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(30), nullable=False, default="general")
    message: Mapped[str | None] = mapped_column(Text)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_alerts_encounter_id", "encounter_id"),
        Index("ix_alerts_to_user", "to_user_id", "is_read"),
    )


class DepartmentRouting(Base):
    __tablename__ = "department_routing"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    encounter_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("encounters.id", ondelete="CASCADE"), nullable=False
    )
    department: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=RoutingStatus.PENDING.value, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default=RoutingPriority.ROUTINE.value, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    routed_by: Mapped[str | None] = mapped_column(String(64))
    routed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_department_routing_encounter", "encounter_id"),
        Index("ix_department_routing_dept_status", "department", "status"),
        Index("ix_department_routing_routed_at", "routed_at"),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    user_id: Mapped[str | None] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_audit_resource", "resource_type", "resource_id"),
        Index("ix_audit_timestamp", "timestamp"),
    )
