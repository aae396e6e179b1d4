"""Tests for the encounter transition table."""

import pytest

from clinic_flow.workflow.states import (
    DEPARTMENT_STATUS,
    PHASE_TIMESTAMPS,
    STATUS_DEPARTMENT,
    TERMINAL_STATUSES,
    Department,
    EncounterStatus,
    allowed_targets,
    can_transition,
)

S = EncounterStatus


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        [
            (S.CHECKED_IN, S.IN_ROOM),
            (S.IN_ROOM, S.VITALS_COMPLETE),
            (S.VITALS_COMPLETE, S.WITH_NURSE),
            (S.WITH_NURSE, S.WAITING_FOR_DOCTOR),
            (S.WAITING_FOR_DOCTOR, S.WITH_DOCTOR),
            (S.WITH_DOCTOR, S.AT_LAB),
            (S.AT_LAB, S.WITH_NURSE),
            (S.WITH_NURSE, S.READY_FOR_CHECKOUT),
            (S.READY_FOR_CHECKOUT, S.COMPLETED),
        ],
    )
    def test_main_line(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (S.CHECKED_IN, S.WITH_DOCTOR),
            (S.IN_ROOM, S.COMPLETED),
            (S.AT_LAB, S.AT_IMAGING),
            (S.AT_PHARMACY, S.READY_FOR_CHECKOUT),
            (S.WAITING_FOR_DOCTOR, S.AT_LAB),
            (S.READY_FOR_CHECKOUT, S.WITH_NURSE),
        ],
    )
    def test_skips_are_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_cancel_from_every_open_status(self):
        for status in S:
            if status in TERMINAL_STATUSES:
                continue
            assert can_transition(status, S.CANCELLED), status

    def test_terminal_statuses_are_dead_ends(self):
        for terminal in TERMINAL_STATUSES:
            assert allowed_targets(terminal) == []
            assert not can_transition(terminal, S.CANCELLED)

    def test_allowed_targets_from_doctor(self):
        assert set(allowed_targets(S.WITH_DOCTOR)) == {
            S.WITH_NURSE,
            S.AT_LAB,
            S.AT_IMAGING,
            S.AT_PHARMACY,
            S.READY_FOR_CHECKOUT,
            S.CANCELLED,
        }


def test_every_status_has_a_timestamp_column():
    assert set(PHASE_TIMESTAMPS) == set(S)


def test_receptionist_has_no_status():
    assert Department.RECEPTIONIST not in DEPARTMENT_STATUS
    assert STATUS_DEPARTMENT[S.AT_IMAGING] == Department.IMAGING
