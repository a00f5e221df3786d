"""Application status transitions.

An application moves from pending to one of its terminal states. Approving
it materializes the Thesis and copies the application's supervisor links
into the thesis's live supervisor set.
"""

import logging
from typing import Any, Union

from thesisflow.errors import InvalidStateError, NotFoundError
from thesisflow.ledger import StatusLedger
from thesisflow.models import Thesis, ThesisApplication, utcnow
from thesisflow.repository import Repositories
from thesisflow.state_machine import validate_application_transition
from thesisflow.types import ApplicationStatus, SupervisorScope, ThesisStatus

logger = logging.getLogger(__name__)

MSG_APPLICATION_NOT_FOUND = "Thesis application not found"
MSG_SUPERVISOR_REQUIRED = "Thesis application must have exactly one supervisor"


def transition_application(
    repos: Repositories,
    ledger: StatusLedger,
    application_id: Any,
    new_status: Union[str, ApplicationStatus],
) -> Union[ThesisApplication, Thesis]:
    """Move an application to ``new_status`` inside the caller's transaction.

    Args:
        repos: Repositories bound to the current transaction
        ledger: Ledger bound to the same transaction
        application_id: Id of the application to update
        new_status: Requested status

    Returns:
        The created Thesis when approving, otherwise the updated application

    Raises:
        NotFoundError: No application with that id
        InvalidTransitionError: ``new_status`` equals the current status
        ClosedApplicationError: The application is already closed
        InvalidStateError: Approval of an application without exactly one supervisor
    """
    application = repos.applications.find_by_id(application_id)
    if application is None:
        raise NotFoundError(MSG_APPLICATION_NOT_FOUND)

    target = validate_application_transition(application.status, new_status)
    old_status = application.status

    ledger.append(application.id, old_status, target)
    application.status = target.value
    repos.applications.save(application)

    if target != ApplicationStatus.APPROVED:
        return application

    return _create_thesis(repos, application)


def _create_thesis(repos: Repositories, application: ThesisApplication) -> Thesis:
    links = repos.application_supervisors.find_all(thesis_application_id=application.id)
    if sum(1 for link in links if link.is_supervisor) != 1:
        raise InvalidStateError(MSG_SUPERVISOR_REQUIRED)

    thesis = repos.theses.create(
        thesis_application_id=application.id,
        student_id=application.student_id,
        company_id=application.company_id,
        topic=application.topic,
        thesis_start_date=utcnow(),
        status=ThesisStatus.ONGOING.value,
    )
    repos.thesis_supervisors.bulk_create(
        {
            "thesis_id": thesis.id,
            "teacher_id": link.teacher_id,
            "scope": SupervisorScope.LIVE.value,
            "is_supervisor": link.is_supervisor,
        }
        for link in links
    )
    logger.info("Created thesis %s from application %s", thesis.id, application.id)
    return thesis


__all__ = [
    "transition_application",
]
