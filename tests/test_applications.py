"""Tests for application status transitions through the runtime.

Tests cover:
- Approval creating the thesis and copying supervisor links
- Rejection and cancellation
- Closed applications, missing applications and bad payloads
- Rollback when approval cannot create the thesis
"""

import pytest

from thesisflow.errors import (
    ClosedApplicationError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from thesisflow.models import Thesis
from thesisflow.types import ApplicationStatus, SupervisorScope, ThesisStatus

from tests.conftest import STUDENT_ID


class TestApproval:
    """Test approving an application."""

    def test_creates_thesis(self, seeded):
        """Should create an ongoing thesis with the application's supervisors."""
        response = seeded.transition_application({"id": 1, "new_status": "approved"})

        assert response["status"] == "ongoing"
        assert response["thesisApplicationId"] == 1
        assert response["studentId"] == STUDENT_ID
        assert sorted(
            (s["teacherId"], s["isSupervisor"]) for s in response["supervisors"]
        ) == [(1, True), (2, False)]

        with seeded.read_only() as (repos, ledger):
            application = repos.applications.find_by_id(1)
            thesis = repos.theses.find_one(thesis_application_id=1)
            links = repos.thesis_supervisors.find_all(thesis_id=thesis.id)
            history = ledger.history(1)

        assert application.status == ApplicationStatus.APPROVED.value
        assert thesis.topic == "Graph neural networks"
        assert thesis.thesis_start_date is not None
        assert all(link.scope == SupervisorScope.LIVE.value for link in links)
        assert [(e.old_status, e.new_status) for e in history] == [
            (ApplicationStatus.PENDING, ApplicationStatus.APPROVED),
        ]

    def test_requires_single_supervisor(self, seeded):
        """Should roll back the approval when the application has no supervisor."""
        with seeded.unit_of_work() as (repos, _, _batch):
            repos.application_supervisors.destroy(thesis_application_id=1, is_supervisor=True)

        with pytest.raises(InvalidStateError):
            seeded.transition_application({"id": 1, "new_status": "approved"})

        with seeded.read_only() as (repos, ledger):
            assert repos.applications.find_by_id(1).status == "pending"
            assert repos.theses.count() == 0
            assert ledger.history(1) == []

    def test_cannot_approve_twice(self, seeded):
        """Should report a closed application after approval."""
        seeded.transition_application({"id": 1, "new_status": "approved"})
        with pytest.raises(ClosedApplicationError):
            seeded.transition_application({"id": 1, "new_status": "rejected"})

        with seeded.read_only() as (repos, _):
            assert repos.theses.count(Thesis.thesis_application_id == 1) == 1


class TestOtherTransitions:
    """Test rejecting, cancelling and invalid requests."""

    @pytest.mark.parametrize("target", ["rejected", "cancelled"])
    def test_close_without_thesis(self, seeded, target):
        """Should update the application without creating a thesis."""
        response = seeded.transition_application({"id": "1", "new_status": target})

        assert response["id"] == 1
        assert response["status"] == target
        with seeded.read_only() as (repos, ledger):
            assert repos.theses.count() == 0
            assert ledger.latest(1).new_status == ApplicationStatus(target)

    def test_same_status(self, seeded):
        """Should reject a same-status update and record nothing."""
        with pytest.raises(InvalidTransitionError):
            seeded.transition_application({"id": 1, "new_status": "pending"})
        with seeded.read_only() as (_, ledger):
            assert ledger.history(1) == []

    def test_missing_application(self, seeded):
        """Should return not found for an unknown id."""
        with pytest.raises(NotFoundError) as exc_info:
            seeded.transition_application({"id": 99, "new_status": "approved"})
        assert exc_info.value.message == "Thesis application not found"

    def test_non_numeric_id(self, seeded):
        """Should treat a non-numeric id as not found."""
        with pytest.raises(NotFoundError):
            seeded.transition_application({"id": "abc", "new_status": "approved"})

    def test_missing_field(self, seeded):
        """Should fail validation when new_status is absent."""
        with pytest.raises(ValidationFailedError) as exc_info:
            seeded.transition_application({"id": 1})
        assert exc_info.value.fields[0].path == "new_status"

    def test_thesis_status_rejected(self, seeded):
        """Should not accept a thesis status for an application."""
        with pytest.raises(ValidationFailedError):
            seeded.transition_application({"id": 1, "new_status": ThesisStatus.ONGOING.value})
