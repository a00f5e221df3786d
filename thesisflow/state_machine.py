"""Transition graphs for applications and theses.

Both graphs are plain lookup tables mapping each status to the set of
statuses it may move to. The validators below are pure: they raise a typed
error or return the parsed target status, and never touch storage.

Usage:
    >>> from thesisflow.state_machine import validate_conclusion_transition
    >>> validate_conclusion_transition("ongoing", "conclusion_requested")
    <ThesisStatus.CONCLUSION_REQUESTED: 'conclusion_requested'>
"""

from typing import Dict, FrozenSet, Union

from thesisflow.errors import ClosedApplicationError, InvalidTransitionError, ValidationFailedError
from thesisflow.types import ApplicationStatus, ThesisStatus

MSG_SAME_STATUS = "New status must be different from the current status"
MSG_CLOSED_APPLICATION = "Cannot update a closed application"
MSG_INVALID_CURRENT_THESIS_STATUS = "Invalid current thesis status for conclusion update"
MSG_INVALID_CONCLUSION_TRANSITION = "Invalid conclusion status transition"


APPLICATION_TRANSITIONS: Dict[ApplicationStatus, FrozenSet[ApplicationStatus]] = {
    ApplicationStatus.PENDING: frozenset({
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.CANCELLED,
    }),
    # Terminal states - no transitions allowed
    ApplicationStatus.APPROVED: frozenset(),
    ApplicationStatus.REJECTED: frozenset(),
    ApplicationStatus.CANCELLED: frozenset(),
}

APPLICATION_TERMINAL_STATES: FrozenSet[ApplicationStatus] = frozenset(
    status for status, targets in APPLICATION_TRANSITIONS.items() if not targets
)


# conclusion_rejected, cancel_approved and done have no outgoing edges here;
# a rejected conclusion is resubmitted through the conclusion request workflow.
CONCLUSION_TRANSITIONS: Dict[ThesisStatus, FrozenSet[ThesisStatus]] = {
    ThesisStatus.ONGOING: frozenset({
        ThesisStatus.CONCLUSION_REQUESTED,
        ThesisStatus.CANCEL_REQUESTED,
    }),
    ThesisStatus.CONCLUSION_REQUESTED: frozenset({
        ThesisStatus.CONCLUSION_APPROVED,
        ThesisStatus.ONGOING,
    }),
    ThesisStatus.CONCLUSION_APPROVED: frozenset({ThesisStatus.ALMALAUREA}),
    ThesisStatus.ALMALAUREA: frozenset({ThesisStatus.COMPILED_QUESTIONNAIRE}),
    ThesisStatus.COMPILED_QUESTIONNAIRE: frozenset({ThesisStatus.FINAL_EXAM}),
    ThesisStatus.FINAL_EXAM: frozenset({ThesisStatus.FINAL_THESIS}),
    ThesisStatus.FINAL_THESIS: frozenset({
        ThesisStatus.DONE,
        ThesisStatus.ONGOING,
    }),
    ThesisStatus.CANCEL_REQUESTED: frozenset({
        ThesisStatus.CANCEL_APPROVED,
        ThesisStatus.ONGOING,
    }),
}


def parse_application_status(value: Union[str, ApplicationStatus]) -> ApplicationStatus:
    """Parse a requested application status.

    Raises:
        ValidationFailedError: If the string is not an application status
    """
    try:
        return ApplicationStatus(value)
    except ValueError:
        raise ValidationFailedError(f"Invalid application status: '{value}'") from None


def is_application_closed(status: Union[str, ApplicationStatus]) -> bool:
    return ApplicationStatus(status) in APPLICATION_TERMINAL_STATES


def validate_application_transition(
    current: Union[str, ApplicationStatus],
    target: Union[str, ApplicationStatus],
) -> ApplicationStatus:
    """Check an application status change.

    The same-status check comes first, so re-submitting the current status
    of a closed application reports the same-status error. A closed
    application is refused before the target is parsed.

    Raises:
        ValidationFailedError: Unknown target status
        InvalidTransitionError: Target equals current
        ClosedApplicationError: Current status is terminal
    """
    current_status = ApplicationStatus(current)
    target_value = target.value if isinstance(target, ApplicationStatus) else target

    if target_value == current_status.value:
        raise InvalidTransitionError(MSG_SAME_STATUS, current_status.value, target_value)

    if current_status in APPLICATION_TERMINAL_STATES:
        raise ClosedApplicationError(MSG_CLOSED_APPLICATION)

    target_status = parse_application_status(target)

    if target_status not in APPLICATION_TRANSITIONS[current_status]:
        raise InvalidTransitionError(
            f"Invalid application status transition: '{current_status.value}' -> '{target_status.value}'",
            current_status.value,
            target_status.value,
        )
    return target_status


def can_transition_conclusion(current: str, target: str) -> bool:
    """True when ``current -> target`` is an edge of the conclusion graph."""
    try:
        return ThesisStatus(target) in CONCLUSION_TRANSITIONS.get(ThesisStatus(current), frozenset())
    except ValueError:
        return False


def is_conclusion_terminal(status: Union[str, ThesisStatus]) -> bool:
    """True for thesis statuses with no outgoing edge in the conclusion graph."""
    return not CONCLUSION_TRANSITIONS.get(ThesisStatus(status))


def validate_conclusion_transition(
    current: Union[str, ThesisStatus],
    target: Union[str, ThesisStatus],
) -> ThesisStatus:
    """Check a thesis status change against CONCLUSION_TRANSITIONS.

    Raises:
        InvalidTransitionError: Target equals current, current status has no
            outgoing edges, or the pair is not an edge (including unknown
            target strings)
    """
    current_value = current.value if isinstance(current, ThesisStatus) else current
    target_value = target.value if isinstance(target, ThesisStatus) else target

    if current_value == target_value:
        raise InvalidTransitionError(MSG_SAME_STATUS, current_value, target_value)

    try:
        current_status = ThesisStatus(current_value)
    except ValueError:
        current_status = None
    if current_status is None or is_conclusion_terminal(current_status):
        raise InvalidTransitionError(MSG_INVALID_CURRENT_THESIS_STATUS, current_value, target_value)

    if not can_transition_conclusion(current_value, target_value):
        raise InvalidTransitionError(MSG_INVALID_CONCLUSION_TRANSITION, current_value, target_value)

    return ThesisStatus(target_value)


__all__ = [
    "APPLICATION_TRANSITIONS",
    "APPLICATION_TERMINAL_STATES",
    "CONCLUSION_TRANSITIONS",
    "parse_application_status",
    "is_application_closed",
    "validate_application_transition",
    "can_transition_conclusion",
    "is_conclusion_terminal",
    "validate_conclusion_transition",
]
