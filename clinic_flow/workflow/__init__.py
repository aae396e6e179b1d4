"""Encounter workflow engine components.

Only the leaf modules are re-exported here; ``clinic_flow.core.models``
imports from this package, so ``WorkflowEngine`` is imported from
``clinic_flow.workflow.engine`` directly.
"""

from clinic_flow.workflow.errors import (
    AlreadyRouted,
    ConflictError,
    EncounterClosed,
    IllegalTransition,
    NotFoundError,
    ResourceUnavailable,
    StaleState,
    ValidationError,
    WorkflowError,
)
from clinic_flow.workflow.states import (
    AlertType,
    Department,
    EncounterStatus,
    ResourceKind,
    RoutingPriority,
    RoutingStatus,
    allowed_targets,
    can_transition,
)

__all__ = [
    "AlertType",
    "AlreadyRouted",
    "ConflictError",
    "Department",
    "EncounterClosed",
    "EncounterStatus",
    "IllegalTransition",
    "NotFoundError",
    "ResourceKind",
    "ResourceUnavailable",
    "RoutingPriority",
    "RoutingStatus",
    "StaleState",
    "ValidationError",
    "WorkflowError",
    "allowed_targets",
    "can_transition",
]
