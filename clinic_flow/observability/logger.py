"""Workflow event logger for structured telemetry."""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from clinic_flow.observability.events import (
    AlertEvent,
    EventType,
    ResourceEvent,
    RoutingEvent,
    SectionEvent,
    TransitionEvent,
    WorkflowEvent,
)

logger = logging.getLogger(__name__)

# log type -> (event class, event type prefix)
_CATEGORIES: dict[str, tuple[type[WorkflowEvent], str]] = {
    "encounters": (TransitionEvent, "encounter"),
    "resources": (ResourceEvent, "resource"),
    "routing": (RoutingEvent, "routing"),
    "sections": (SectionEvent, "section"),
    "alerts": (AlertEvent, "alert"),
}


class WorkflowEventLogger:
    """Central logger for workflow engine events.

    Writes one JSON Lines file per event category for later analysis and
    fans events out to registered callbacks.
    """

    _instance: Optional["WorkflowEventLogger"] = None

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enabled: bool = True,
    ):
        self.enabled = enabled

        if log_dir is None:
            log_dir = Path("data/logs")
        self.log_dir = Path(log_dir)
        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self._log_files: dict[str, Path] = {
            "encounters": self.log_dir / "encounters.jsonl",
            "resources": self.log_dir / "resources.jsonl",
            "routing": self.log_dir / "routing.jsonl",
            "sections": self.log_dir / "sections.jsonl",
            "alerts": self.log_dir / "alerts.jsonl",
        }

        # Event callbacks for real-time monitoring
        self._callbacks: list[Callable[[WorkflowEvent], None]] = []

    @classmethod
    def get_instance(cls) -> "WorkflowEventLogger":
        """Get or create singleton instance configured from settings."""
        if cls._instance is None:
            from clinic_flow.config import get_settings

            settings = get_settings()
            cls._instance = cls(log_dir=settings.telemetry_log_dir, enabled=settings.telemetry_enabled)
        return cls._instance

    def generate_request_id(self) -> str:
        """Generate a unique request ID."""
        return str(uuid.uuid4())[:8]

    def add_callback(self, callback: Callable[[WorkflowEvent], None]) -> None:
        """Add callback for real-time event monitoring."""
        self._callbacks.append(callback)

    def _write_event(self, event: WorkflowEvent, log_type: str) -> None:
        """Write event to the category's log file."""
        if not self.enabled:
            return

        try:
            log_file = self._log_files.get(log_type)
            if log_file:
                with open(log_file, "a") as f:
                    f.write(event.model_dump_json() + "\n")

            for callback in self._callbacks:
                try:
                    callback(event)
                except Exception as e:
                    logger.warning(f"Telemetry callback failed: {e}")

        except OSError as e:
            logger.warning(f"Failed to write workflow event: {e}")

    @contextmanager
    def operation(
        self,
        log_type: str,
        operation: str,
        actor_id: Optional[str] = None,
        encounter_id: Any = None,
        request_id: Optional[str] = None,
        **fields: Any,
    ):
        """Context manager timing one engine operation.

        Usage:
            with telemetry.operation("encounters", "transition", actor_id=staff) as event:
                result = await machine.transition(...)
                event.to_status = result.encounter.status
        """
        event_cls, prefix = _CATEGORIES[log_type]
        start_time = time.time()

        event = event_cls(
            event_type=EventType(f"{prefix}_start"),
            operation=operation,
            actor_id=actor_id,
            encounter_id=str(encounter_id) if encounter_id is not None else None,
            request_id=request_id or self.generate_request_id(),
            **fields,
        )

        try:
            yield event
            event.event_type = EventType(f"{prefix}_success")

        except Exception as e:
            event.event_type = EventType(f"{prefix}_error")
            event.error_type = type(e).__name__
            event.error_code = getattr(e, "error_code", None)
            event.error_message = str(e)[:200]
            raise

        finally:
            event.duration_ms = (time.time() - start_time) * 1000
            self._write_event(event, log_type)

    # Utility methods

    def get_recent_events(
        self,
        log_type: str,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Read recent events from a log file."""
        log_file = self._log_files.get(log_type)
        if not log_file or not log_file.exists():
            return []

        events = []
        with open(log_file) as f:
            for line in f:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

        return events[-limit:]

    def get_stats(self, log_type: str) -> dict[str, Any]:
        """Get basic statistics for a log type."""
        events = self.get_recent_events(log_type, limit=1000)
        if not events:
            return {"total": 0}

        total = len(events)
        errors = sum(1 for e in events if e.get("event_type", "").endswith("_error"))
        avg_duration = sum(e.get("duration_ms") or 0 for e in events) / total

        by_operation: dict[str, int] = {}
        for e in events:
            op = e.get("operation", "unknown")
            by_operation[op] = by_operation.get(op, 0) + 1

        return {
            "total": total,
            "errors": errors,
            "error_rate": errors / total if total > 0 else 0,
            "avg_duration_ms": avg_duration,
            "by_operation": by_operation,
        }


def get_workflow_logger() -> WorkflowEventLogger:
    """Get the global workflow event logger instance."""
    return WorkflowEventLogger.get_instance()
