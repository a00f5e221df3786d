"""Unit tests for the application and conclusion transition graphs.

Tests cover:
- Application transitions out of pending and the closed terminal states
- Every pair of thesis statuses against the conclusion graph
- Same-status and unknown-status handling
- Terminal state helpers
"""

import itertools

import pytest

from thesisflow.errors import ClosedApplicationError, InvalidTransitionError, ValidationFailedError
from thesisflow.state_machine import (
    APPLICATION_TERMINAL_STATES,
    CONCLUSION_TRANSITIONS,
    MSG_CLOSED_APPLICATION,
    MSG_INVALID_CONCLUSION_TRANSITION,
    MSG_INVALID_CURRENT_THESIS_STATUS,
    MSG_SAME_STATUS,
    can_transition_conclusion,
    is_application_closed,
    is_conclusion_terminal,
    validate_application_transition,
    validate_conclusion_transition,
)
from thesisflow.types import ApplicationStatus, ThesisStatus

CONCLUSION_EDGES = {
    ("ongoing", "conclusion_requested"),
    ("ongoing", "cancel_requested"),
    ("conclusion_requested", "conclusion_approved"),
    ("conclusion_requested", "ongoing"),
    ("conclusion_approved", "almalaurea"),
    ("almalaurea", "compiled_questionnaire"),
    ("compiled_questionnaire", "final_exam"),
    ("final_exam", "final_thesis"),
    ("final_thesis", "done"),
    ("final_thesis", "ongoing"),
    ("cancel_requested", "cancel_approved"),
    ("cancel_requested", "ongoing"),
}

NO_OUTGOING_EDGES = {"conclusion_rejected", "cancel_approved", "done"}


class TestApplicationTransitions:
    """Test application status changes."""

    @pytest.mark.parametrize("target", ["approved", "rejected", "cancelled"])
    def test_pending_can_close(self, target):
        """Should allow pending to move to each terminal state."""
        assert validate_application_transition("pending", target) == ApplicationStatus(target)

    def test_same_status_rejected(self):
        """Should reject re-submitting the current status."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_application_transition("pending", "pending")
        assert exc_info.value.message == MSG_SAME_STATUS
        assert exc_info.value.status == 400

    @pytest.mark.parametrize("target", ["pending", "archived"])
    @pytest.mark.parametrize("current", ["approved", "rejected", "cancelled"])
    def test_closed_application(self, current, target):
        """Should refuse any change out of a terminal state, known target or not."""
        with pytest.raises(ClosedApplicationError) as exc_info:
            validate_application_transition(current, target)
        assert exc_info.value.message == MSG_CLOSED_APPLICATION

    def test_same_status_checked_before_closed(self):
        """Should report the same-status error for a closed application re-sent its status."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_application_transition("approved", "approved")
        assert exc_info.value.message == MSG_SAME_STATUS

    def test_unknown_target(self):
        """Should reject a status outside the application vocabulary."""
        with pytest.raises(ValidationFailedError):
            validate_application_transition("pending", "archived")

    def test_thesis_status_is_not_an_application_status(self):
        """Should not accept thesis statuses as application targets."""
        with pytest.raises(ValidationFailedError):
            validate_application_transition("pending", "ongoing")

    def test_terminal_states(self):
        """Should list exactly the three closed states."""
        assert APPLICATION_TERMINAL_STATES == {
            ApplicationStatus.APPROVED,
            ApplicationStatus.REJECTED,
            ApplicationStatus.CANCELLED,
        }
        assert is_application_closed("rejected")
        assert not is_application_closed(ApplicationStatus.PENDING)


class TestConclusionTransitions:
    """Test the conclusion graph."""

    def test_table_matches_edges(self):
        """Should encode exactly the documented edges."""
        edges = {
            (current.value, target.value)
            for current, targets in CONCLUSION_TRANSITIONS.items()
            for target in targets
        }
        assert edges == CONCLUSION_EDGES

    @pytest.mark.parametrize(
        "current,target",
        [
            (c.value, t.value)
            for c, t in itertools.permutations(ThesisStatus, 2)
        ],
    )
    def test_every_pair(self, current, target):
        """Should allow listed edges and reject everything else with the right message."""
        if (current, target) in CONCLUSION_EDGES:
            assert validate_conclusion_transition(current, target) == ThesisStatus(target)
            assert can_transition_conclusion(current, target)
            return

        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_conclusion_transition(current, target)
        expected = (
            MSG_INVALID_CURRENT_THESIS_STATUS if current in NO_OUTGOING_EDGES else MSG_INVALID_CONCLUSION_TRANSITION
        )
        assert exc_info.value.message == expected
        assert exc_info.value.current_status == current
        assert exc_info.value.target_status == target

    @pytest.mark.parametrize("status", [s.value for s in ThesisStatus])
    def test_same_status(self, status):
        """Should reject a transition to the current status first."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_conclusion_transition(status, status)
        assert exc_info.value.message == MSG_SAME_STATUS

    def test_unknown_target(self):
        """Should reject an unknown target as an invalid transition."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_conclusion_transition("ongoing", "archived")
        assert exc_info.value.message == MSG_INVALID_CONCLUSION_TRANSITION
        assert not can_transition_conclusion("ongoing", "archived")

    def test_unknown_current(self):
        """Should reject an unknown stored status as an invalid current status."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_conclusion_transition("lost", "ongoing")
        assert exc_info.value.message == MSG_INVALID_CURRENT_THESIS_STATUS

    def test_accepts_enum_members(self):
        """Should accept ThesisStatus members as well as strings."""
        result = validate_conclusion_transition(ThesisStatus.FINAL_EXAM, ThesisStatus.FINAL_THESIS)
        assert result == ThesisStatus.FINAL_THESIS

    def test_terminal_helper(self):
        """Should flag statuses without outgoing edges."""
        for status in ThesisStatus:
            assert is_conclusion_terminal(status) == (status.value in NO_OUTGOING_EDGES)
