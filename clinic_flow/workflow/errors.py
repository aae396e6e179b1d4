"""Typed errors raised by the workflow engine.

Every error carries a stable ``error_code`` and the HTTP status the REST layer
maps it to. The engine never retries; callers decide what to do:

* ``ValidationError``: malformed input, rejected before any mutation.
* ``NotFoundError``: unknown id.
* ``ConflictError`` and subclasses: business-rule violations, not retryable.
* ``StaleState``: lost a race; re-read and retry.
"""

from __future__ import annotations

from typing import Any, Optional


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""

    error_code = "workflow_error"
    http_status = 500
    retryable = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error_code, "detail": self.message}
        if self.context:
            body["context"] = {k: str(v) for k, v in self.context.items()}
        return body


class ValidationError(WorkflowError):
    error_code = "validation_error"
    http_status = 400


class NotFoundError(WorkflowError):
    error_code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found: {entity_id}", entity=entity, id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(WorkflowError):
    error_code = "conflict"
    http_status = 409


class IllegalTransition(ConflictError):
    error_code = "illegal_transition"

    def __init__(self, current: str, target: str, reason: Optional[str] = None):
        message = f"Cannot move encounter from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, current=current, target=target)
        self.current = current
        self.target = target


class EncounterClosed(ConflictError):
    error_code = "encounter_closed"

    def __init__(self, encounter_id: Any, status: str):
        super().__init__(
            f"Encounter {encounter_id} is {status} and can no longer change",
            encounter_id=encounter_id,
            status=status,
        )


class ResourceUnavailable(ConflictError):
    error_code = "resource_unavailable"

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind.capitalize()} {identifier} is already occupied", kind=kind, identifier=identifier)
        self.kind = kind
        self.identifier = identifier


class AlreadyRouted(ConflictError):
    error_code = "already_routed"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Encounter is already routed to {current}; return it before routing to {requested}",
            current=current,
            requested=requested,
        )
        self.current = current
        self.requested = requested


class StaleState(WorkflowError):
    error_code = "stale_state"
    http_status = 409
    retryable = True
