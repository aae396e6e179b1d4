"""Observability module for workflow telemetry."""

from clinic_flow.observability.events import (
    AlertEvent,
    EventType,
    ResourceEvent,
    RoutingEvent,
    SectionEvent,
    TransitionEvent,
    WorkflowEvent,
)
from clinic_flow.observability.logger import WorkflowEventLogger, get_workflow_logger

__all__ = [
    "AlertEvent",
    "EventType",
    "ResourceEvent",
    "RoutingEvent",
    "SectionEvent",
    "TransitionEvent",
    "WorkflowEvent",
    "WorkflowEventLogger",
    "get_workflow_logger",
]
