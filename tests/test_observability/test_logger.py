"""Tests for the workflow event logger."""

import json

import pytest

from clinic_flow.observability import (
    EventType,
    SectionEvent,
    WorkflowEventLogger,
    get_workflow_logger,
)
from clinic_flow.workflow.errors import IllegalTransition
from clinic_flow.workflow.states import EncounterStatus


@pytest.fixture
def temp_log_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def event_logger(temp_log_dir):
    return WorkflowEventLogger(log_dir=temp_log_dir, enabled=True)


def _read(path):
    return [json.loads(line) for line in path.read_text().strip().split("\n")]


class TestWorkflowEventLogger:
    def test_init_creates_log_directory(self, temp_log_dir):
        WorkflowEventLogger(log_dir=temp_log_dir)

        assert temp_log_dir.exists()

    def test_disabled_logger_writes_nothing(self, temp_log_dir):
        event_logger = WorkflowEventLogger(log_dir=temp_log_dir, enabled=False)

        with event_logger.operation("encounters", "transition", "nurse-1") as event:
            event.to_status = "in_room"

        assert not temp_log_dir.exists()

    def test_operation_success(self, event_logger, temp_log_dir):
        with event_logger.operation("encounters", "transition", "nurse-1", "enc-1", to_status="in_room") as event:
            event.from_status = "checked_in"
            event.changed = True

        events = _read(temp_log_dir / "encounters.jsonl")
        assert len(events) == 1
        assert events[0]["event_type"] == "encounter_success"
        assert events[0]["operation"] == "transition"
        assert events[0]["actor_id"] == "nurse-1"
        assert events[0]["from_status"] == "checked_in"
        assert events[0]["duration_ms"] is not None

    def test_operation_error_records_code(self, event_logger, temp_log_dir):
        with pytest.raises(IllegalTransition):
            with event_logger.operation("encounters", "transition", "nurse-1"):
                raise IllegalTransition("checked_in", "completed")

        events = _read(temp_log_dir / "encounters.jsonl")
        assert events[0]["event_type"] == "encounter_error"
        assert events[0]["error_type"] == "IllegalTransition"
        assert events[0]["error_code"] == "illegal_transition"
        assert "checked_in" in events[0]["error_message"]

    def test_events_go_to_category_files(self, event_logger, temp_log_dir):
        with event_logger.operation("resources", "acquire", kind="room"):
            pass
        with event_logger.operation("alerts", "send", alert_type="urgent"):
            pass

        assert _read(temp_log_dir / "resources.jsonl")[0]["kind"] == "room"
        assert _read(temp_log_dir / "alerts.jsonl")[0]["event_type"] == "alert_success"
        assert not (temp_log_dir / "routing.jsonl").exists()

    def test_callbacks(self, event_logger):
        seen = []
        event_logger.add_callback(seen.append)

        with event_logger.operation("sections", "save_section", section_id="hpi"):
            pass

        assert len(seen) == 1
        assert isinstance(seen[0], SectionEvent)
        assert seen[0].event_type == EventType.SECTION_SUCCESS

    def test_failing_callback_does_not_break_operation(self, event_logger, temp_log_dir):
        def explode(event):
            raise RuntimeError("monitor down")

        event_logger.add_callback(explode)

        with event_logger.operation("routing", "route_to", department="lab"):
            pass

        assert len(_read(temp_log_dir / "routing.jsonl")) == 1

    def test_get_recent_events_and_stats(self, event_logger):
        for _ in range(3):
            with event_logger.operation("encounters", "transition"):
                pass
        with pytest.raises(ValueError):
            with event_logger.operation("encounters", "check_in"):
                raise ValueError("boom")

        assert len(event_logger.get_recent_events("encounters", limit=2)) == 2
        stats = event_logger.get_stats("encounters")
        assert stats["total"] == 4
        assert stats["errors"] == 1
        assert stats["error_rate"] == 0.25
        assert stats["by_operation"] == {"transition": 3, "check_in": 1}
        assert event_logger.get_stats("alerts") == {"total": 0}


def test_global_logger_follows_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("TELEMETRY_LOG_DIR", str(tmp_path / "global"))

    first = get_workflow_logger()

    assert first is get_workflow_logger()
    assert first.enabled is False


async def test_engine_operations_are_logged(workflow, encounter, telemetry):
    await workflow.transition(encounter.id, EncounterStatus.IN_ROOM, "nurse-1")
    await workflow.save_section(encounter.id, "hpi", "private details", 1, "nurse-1")

    transitions = [e for e in telemetry.get_recent_events("encounters") if e["operation"] == "transition"]
    assert transitions[-1]["from_status"] == "checked_in"
    assert transitions[-1]["to_status"] == "in_room"

    saves = telemetry.get_recent_events("sections")
    assert saves[-1]["outcome"] == "accepted"
    assert saves[-1]["content_length"] == len("private details")
    assert "private details" not in json.dumps(saves)
