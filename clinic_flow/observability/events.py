"""Structured telemetry events for workflow operations."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of workflow events."""

    ENCOUNTER_START = "encounter_start"
    ENCOUNTER_SUCCESS = "encounter_success"
    ENCOUNTER_ERROR = "encounter_error"
    RESOURCE_START = "resource_start"
    RESOURCE_SUCCESS = "resource_success"
    RESOURCE_ERROR = "resource_error"
    ROUTING_START = "routing_start"
    ROUTING_SUCCESS = "routing_success"
    ROUTING_ERROR = "routing_error"
    SECTION_START = "section_start"
    SECTION_SUCCESS = "section_success"
    SECTION_ERROR = "section_error"
    ALERT_START = "alert_start"
    ALERT_SUCCESS = "alert_success"
    ALERT_ERROR = "alert_error"


class WorkflowEvent(BaseModel):
    """Base class for all workflow events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    operation: str
    actor_id: Optional[str] = None
    encounter_id: Optional[str] = None

    # Error fields (populated on error)
    error_type: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class TransitionEvent(WorkflowEvent):
    """Status changes, check-ins and staff assignment."""

    event_type: EventType = EventType.ENCOUNTER_START
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    changed: Optional[bool] = None
    version: Optional[int] = None


class ResourceEvent(WorkflowEvent):
    """Room and bed acquisition, release, reassignment and reconciliation."""

    event_type: EventType = EventType.RESOURCE_START
    kind: Optional[str] = None
    resource_id: Optional[str] = None
    previous_resource_id: Optional[str] = None
    corrections: Optional[int] = None


class RoutingEvent(WorkflowEvent):
    event_type: EventType = EventType.ROUTING_START
    department: Optional[str] = None
    priority: Optional[str] = None
    changed: Optional[bool] = None


class SectionEvent(WorkflowEvent):
    """Section saves. Note content is never logged, only its length."""

    event_type: EventType = EventType.SECTION_START
    section_id: Optional[str] = None
    edit_version: Optional[int] = None
    outcome: Optional[str] = None
    content_length: Optional[int] = None


class AlertEvent(WorkflowEvent):
    event_type: EventType = EventType.ALERT_START
    alert_id: Optional[str] = None
    alert_type: Optional[str] = None
    to_user_id: Optional[str] = None
