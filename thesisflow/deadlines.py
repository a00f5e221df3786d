"""Deadline resolution for the logged student.

The deadline type follows the student's progress: no thesis and no active
application means the next thesis request deadline, an active application
means the conclusion request deadline, an existing thesis means final exam
registration. A thesis sent back from final_thesis to ongoing skips to the
next graduation session.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from dateutil.parser import isoparse

from thesisflow.conclusion import resolve_student
from thesisflow.errors import InternalError, NotFoundError
from thesisflow.ledger import StatusLedger
from thesisflow.models import Deadline, Thesis, ThesisApplication, utcnow
from thesisflow.repository import Repositories
from thesisflow.types import ApplicationStatus, DeadlineType, StudentContext, ThesisStatus

logger = logging.getLogger(__name__)

MSG_NO_UPCOMING_DEADLINE = "No upcoming deadline found for this flag"
MSG_SESSION_NOT_FOUND = "Graduation session not found for deadline"

ACTIVE_APPLICATION_STATES = (ApplicationStatus.PENDING.value, ApplicationStatus.APPROVED.value)


def _as_naive_utc(value: Union[datetime, str, None]) -> datetime:
    if value is None:
        return utcnow()
    if isinstance(value, str):
        value = isoparse(value)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def deadline_type_for(repos: Repositories, student_id: str, thesis: Optional[Thesis]) -> DeadlineType:
    if thesis is not None:
        return DeadlineType.FINAL_EXAM_REGISTRATION
    active = repos.applications.find_one(
        ThesisApplication.status.in_(ACTIVE_APPLICATION_STATES),
        student_id=student_id,
    )
    if active is not None:
        return DeadlineType.CONCLUSION_REQUEST
    return DeadlineType.THESIS_REQUEST


def _skips_to_next_session(ledger: StatusLedger, thesis: Optional[Thesis]) -> bool:
    if thesis is None or thesis.status != ThesisStatus.ONGOING.value:
        return False
    latest = ledger.latest(thesis.thesis_application_id)
    return latest is not None and latest.matches(ThesisStatus.FINAL_THESIS, ThesisStatus.ONGOING)


def resolve_deadlines(
    repos: Repositories,
    ledger: StatusLedger,
    context: StudentContext,
    now: Union[datetime, str, None] = None,
) -> Dict[str, Any]:
    """Graduation session and deadlines that currently apply to the student.

    Args:
        now: Reference time (defaults to the current UTC time)

    Returns:
        ``{"graduationSession": ..., "deadlines": [...]}`` with every deadline
        of the selected session, earliest first

    Raises:
        NotFoundError: Student missing, or no upcoming deadline of the resolved type
        InternalError: The selected deadline has no graduation session
    """
    student = resolve_student(repos, context)
    thesis = repos.theses.find_one(student_id=student.id)
    deadline_type = deadline_type_for(repos, student.id, thesis)
    reference = _as_naive_utc(now)

    upcoming = repos.deadlines.find_all(
        Deadline.deadline_date >= reference,
        deadline_type=deadline_type.value,
        order_by=Deadline.deadline_date,
    )
    if not upcoming:
        raise NotFoundError(MSG_NO_UPCOMING_DEADLINE)

    selected = upcoming[0]
    if _skips_to_next_session(ledger, thesis):
        selected = next(
            (d for d in upcoming if d.graduation_session_id != upcoming[0].graduation_session_id),
            upcoming[0],
        )
        logger.info(
            "Thesis %s returned from final_thesis; using graduation session %s",
            thesis.id,
            selected.graduation_session_id,
        )

    session = (
        repos.graduation_sessions.find_by_id(selected.graduation_session_id)
        if selected.graduation_session_id is not None
        else None
    )
    if session is None:
        raise InternalError(MSG_SESSION_NOT_FOUND)

    deadlines = repos.deadlines.find_all(graduation_session_id=session.id, order_by=Deadline.deadline_date)
    return {
        "graduationSession": session.to_dict(),
        "deadlines": [deadline.to_dict() for deadline in deadlines],
    }


__all__ = [
    "deadline_type_for",
    "resolve_deadlines",
]
