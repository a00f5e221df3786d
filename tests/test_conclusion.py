"""Tests for the conclusion workflow.

Tests cover:
- Administrative conclusion transitions
- Conclusion request submission: preconditions, text fields, files,
  related collections and ledger rows
- Final thesis upload
- Temporary and staged file cleanup on failure
"""

import os

import pytest

from thesisflow.conclusion import final_file_paths, request_file_paths
from thesisflow.errors import (
    IncompleteEmbargoError,
    InvalidFileFormatError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from thesisflow.types import StudentContext, SupervisorScope, ThesisStatus
from thesisflow.uploads import SubmittedFiles

from tests.conftest import NOT_PDF_BYTES, PLAIN_PDF_BYTES, RESUME_STUDENT_ID, STUDENT_ID


def _request(**overrides):
    metadata = {"title": "Titolo", "abstract": "Riassunto", "language": "it"}
    metadata.update(overrides)
    return metadata


def _statuses(runtime, application_id=1):
    with runtime.read_only() as (_, ledger):
        return [(e.old_status, e.new_status) for e in ledger.history(application_id)]


class TestConclusionTransition:
    """Test the administrative conclusion update."""

    def test_moves_along_graph(self, seeded, thesis_id):
        """Should update the status and append a ledger row."""
        response = seeded.transition_conclusion({"thesisId": thesis_id, "conclusionStatus": "conclusion_requested"})

        assert response["status"] == "conclusion_requested"
        assert _statuses(seeded)[-1] == (ThesisStatus.ONGOING, ThesisStatus.CONCLUSION_REQUESTED)

    def test_approval_sets_confirmation_date(self, seeded, thesis_id, set_thesis):
        """Should stamp the confirmation date on conclusion_approved."""
        set_thesis(thesis_id, status="conclusion_requested")
        seeded.transition_conclusion({"thesisId": thesis_id, "conclusionStatus": "conclusion_approved"})

        with seeded.read_only() as (repos, _):
            assert repos.theses.find_by_id(thesis_id).thesis_conclusion_confirmation_date is not None

    def test_invalid_edge(self, seeded, thesis_id):
        """Should reject a jump across the graph and leave the thesis alone."""
        before = _statuses(seeded)
        with pytest.raises(InvalidTransitionError):
            seeded.transition_conclusion({"thesisId": thesis_id, "conclusionStatus": "done"})

        assert _statuses(seeded) == before
        with seeded.read_only() as (repos, _):
            assert repos.theses.find_by_id(thesis_id).status == "ongoing"

    def test_missing_thesis(self, seeded):
        """Should return not found for an unknown thesis."""
        with pytest.raises(NotFoundError) as exc_info:
            seeded.transition_conclusion({"thesisId": 42, "conclusionStatus": "conclusion_requested"})
        assert exc_info.value.message == "Thesis not found"

    def test_missing_field(self, seeded):
        """Should fail validation without conclusionStatus."""
        with pytest.raises(ValidationFailedError):
            seeded.transition_conclusion({"thesisId": 1})


class TestConclusionRequest:
    """Test the student's conclusion request."""

    def test_happy_path(self, seeded, thesis_id, context, make_upload):
        """Should move an ongoing thesis to conclusion_requested and place the file."""
        response = seeded.submit_conclusion_request(
            context, _request(), SubmittedFiles(thesis_file=make_upload())
        )

        paths = request_file_paths(STUDENT_ID)
        assert response["status"] == "conclusion_requested"
        assert response["thesisConclusionRequestDate"] is not None
        assert response["thesisFilePath"] == paths["thesis_file"]
        assert response["thesisResumePath"] is None
        assert seeded.uploads.exists(paths["thesis_file"])
        assert not os.path.exists(seeded.uploads.absolute(paths["thesis_file"]) + ".pending")
        assert _statuses(seeded)[-1] == (ThesisStatus.ONGOING, ThesisStatus.CONCLUSION_REQUESTED)
        assert os.listdir(seeded.uploads.absolute("uploads/tmp")) == []

    def test_resubmit_after_rejection(self, seeded, thesis_id, context, make_upload, set_thesis):
        """Should accept a request from conclusion_rejected."""
        set_thesis(thesis_id, status="conclusion_rejected")
        response = seeded.submit_conclusion_request(
            context, _request(), SubmittedFiles(thesis_file=make_upload())
        )
        assert response["status"] == "conclusion_requested"
        assert _statuses(seeded)[-1] == (ThesisStatus.CONCLUSION_REJECTED, ThesisStatus.CONCLUSION_REQUESTED)

    def test_wrong_state(self, seeded, thesis_id, context, make_upload, set_thesis):
        """Should refuse a thesis in final_exam and remove the temporary upload."""
        set_thesis(thesis_id, status="final_exam")
        upload = make_upload()

        with pytest.raises(InvalidStateError) as exc_info:
            seeded.submit_conclusion_request(context, _request(), SubmittedFiles(thesis_file=upload))

        assert exc_info.value.message == "Thesis is not in a valid state for conclusion request"
        assert not os.path.exists(upload.path)

    def test_missing_title(self, seeded, thesis_id, context, make_upload):
        """Should require a non-blank title."""
        with pytest.raises(ValidationFailedError) as exc_info:
            seeded.submit_conclusion_request(
                context, _request(title="   "), SubmittedFiles(thesis_file=make_upload())
            )
        assert exc_info.value.message == "Missing thesis title or abstract"

    def test_missing_thesis_file(self, seeded, thesis_id, context):
        """Should require the thesis file."""
        with pytest.raises(ValidationFailedError) as exc_info:
            seeded.submit_conclusion_request(context, _request(), SubmittedFiles())
        assert exc_info.value.message == "Missing thesis file"

    def test_resume_required_for_collegio(self, seeded, context, make_upload):
        """Should require a resume for students of a resume-required collegio."""
        with seeded.unit_of_work() as (repos, _, _batch):
            repos.applications.create(id=2, topic="Urban design", student_id=RESUME_STUDENT_ID)
            repos.application_supervisors.create(thesis_application_id=2, teacher_id=3, is_supervisor=True)
        seeded.transition_application({"id": 2, "new_status": "approved"})
        other = StudentContext(student_id=RESUME_STUDENT_ID)

        with pytest.raises(ValidationFailedError) as exc_info:
            seeded.submit_conclusion_request(other, _request(), SubmittedFiles(thesis_file=make_upload()))
        assert exc_info.value.message == "Missing thesis resume"

        response = seeded.submit_conclusion_request(
            other,
            _request(),
            SubmittedFiles(thesis_file=make_upload(), thesis_resume=make_upload(filename="resume.pdf")),
        )
        assert response["thesisResumePath"] == request_file_paths(RESUME_STUDENT_ID)["thesis_resume"]

    def test_not_pdfa(self, seeded, thesis_id, context, make_upload):
        """Should reject a PDF without PDF/A identification and leave no file behind."""
        upload = make_upload(PLAIN_PDF_BYTES)
        with pytest.raises(InvalidFileFormatError) as exc_info:
            seeded.submit_conclusion_request(context, _request(), SubmittedFiles(thesis_file=upload))

        assert exc_info.value.message == "Thesis file must include PDF/A identification metadata"
        assert exc_info.value.status == 400
        assert not os.path.exists(upload.path)
        assert not seeded.uploads.exists(request_file_paths(STUDENT_ID)["thesis_file"])

    def test_resume_not_pdf(self, seeded, thesis_id, context, make_upload):
        """Should validate the resume when one is sent."""
        with pytest.raises(InvalidFileFormatError) as exc_info:
            seeded.submit_conclusion_request(
                context,
                _request(),
                SubmittedFiles(thesis_file=make_upload(), thesis_resume=make_upload(NOT_PDF_BYTES, "cv.pdf")),
            )
        assert exc_info.value.message == "Thesis resume must be a PDF file"

    def test_english_mirrors_text(self, seeded, thesis_id, context, make_upload):
        """Should copy title and abstract to the English columns for English theses."""
        response = seeded.submit_conclusion_request(
            context,
            _request(title="Title", abstract="Abstract", titleEng="ignored", language="en"),
            SubmittedFiles(thesis_file=make_upload()),
        )
        assert response["titleEng"] == "Title"
        assert response["abstractEng"] == "Abstract"
        assert response["language"] == "en"

    def test_related_collections(self, seeded, thesis_id, context, make_upload):
        """Should reconcile co-supervisors, SDGs, keywords and embargo in one request."""
        response = seeded.submit_conclusion_request(
            context,
            _request(
                licenseId="1",
                coSupervisors=[{"id": 3}, 4],
                sdgs=[{"goalId": 1, "level": "secondary"}, {"goalId": 1, "level": "primary"}, 2],
                keywords=[1, {"id": 2}, " deep learning ", "deep learning", 77],
                embargo={"duration": "12_months", "motivations": [{"motivationId": 1}, {"motivationId": 2, "otherMotivation": "NDA"}]},
            ),
            SubmittedFiles(thesis_file=make_upload()),
        )

        assert response["licenseId"] == 1
        assert sorted(
            (s["teacherId"], s["isSupervisor"]) for s in response["supervisors"]
        ) == [(1, True), (3, False), (4, False)]
        assert sorted((s["goalId"], s["level"]) for s in response["sdgs"]) == [(1, "primary"), (2, None)]
        assert response["keywords"] == [
            {"keywordId": 1, "keywordOther": None},
            {"keywordId": 2, "keywordOther": None},
            {"keywordId": None, "keywordOther": "deep learning"},
        ]
        assert response["embargo"]["duration"] == "12_months"
        assert response["embargo"]["motivations"] == [
            {"motivationId": 1, "otherMotivation": None},
            {"motivationId": 2, "otherMotivation": "NDA"},
        ]

    def test_unknown_co_supervisor_rolls_back(self, seeded, thesis_id, context, make_upload):
        """Should fail on an unknown teacher and keep the thesis untouched."""
        upload = make_upload()
        with pytest.raises(NotFoundError) as exc_info:
            seeded.submit_conclusion_request(context, _request(coSupervisors=[99]), SubmittedFiles(thesis_file=upload))

        assert exc_info.value.message == "One or more co-supervisors not found"
        with seeded.read_only() as (repos, _):
            thesis = repos.theses.find_by_id(thesis_id)
            assert thesis.status == "ongoing"
            assert thesis.thesis_file_path is None
        final = seeded.uploads.absolute(request_file_paths(STUDENT_ID)["thesis_file"])
        assert not os.path.exists(final)
        assert not os.path.exists(final + ".pending")
        assert not os.path.exists(upload.path)

    def test_embargo_without_duration(self, seeded, thesis_id, context, make_upload):
        """Should reject an embargo without a duration."""
        with pytest.raises(IncompleteEmbargoError) as exc_info:
            seeded.submit_conclusion_request(
                context,
                _request(embargo={"duration": None, "motivations": [1]}),
                SubmittedFiles(thesis_file=make_upload()),
            )
        assert exc_info.value.message == "Embargo duration is required"

    def test_empty_embargo(self, seeded, thesis_id, context, make_upload):
        """Should reject an empty embargo object."""
        with pytest.raises(IncompleteEmbargoError) as exc_info:
            seeded.submit_conclusion_request(
                context, _request(embargo={}), SubmittedFiles(thesis_file=make_upload())
            )
        assert exc_info.value.message == "Embargo data is incomplete"

    def test_clears_draft_co_supervisors(self, seeded, thesis_id, context, make_upload):
        """Should drop the draft working set once the request is submitted."""
        seeded.save_conclusion_draft(context, {"coSupervisors": [3]}, SubmittedFiles())
        seeded.submit_conclusion_request(context, _request(), SubmittedFiles(thesis_file=make_upload()))

        with seeded.read_only() as (repos, _):
            assert repos.thesis_supervisors.count(thesis_id=thesis_id, scope=SupervisorScope.DRAFT.value) == 0

    def test_invalid_payload_shape(self, seeded, thesis_id, context, make_upload):
        """Should reject a malformed collection before touching the thesis."""
        upload = make_upload()
        with pytest.raises(ValidationFailedError) as exc_info:
            seeded.submit_conclusion_request(context, _request(sdgs="1,2"), SubmittedFiles(thesis_file=upload))
        assert exc_info.value.fields[0].path == "sdgs"
        assert not os.path.exists(upload.path)

    def test_student_without_thesis(self, seeded, context, make_upload):
        """Should report a missing thesis."""
        with pytest.raises(NotFoundError) as exc_info:
            seeded.submit_conclusion_request(context, _request(), SubmittedFiles(thesis_file=make_upload()))
        assert exc_info.value.message == "Thesis not found"

    def test_unknown_student(self, seeded, make_upload):
        """Should report a missing student."""
        with pytest.raises(NotFoundError) as exc_info:
            seeded.submit_conclusion_request(
                StudentContext(student_id="s000000"), _request(), SubmittedFiles(thesis_file=make_upload())
            )
        assert exc_info.value.message == "Student not found"


class TestFinalThesisUpload:
    """Test uploading the final thesis."""

    def test_happy_path(self, seeded, thesis_id, context, make_upload, set_thesis):
        """Should place the final file and move the thesis to final_thesis."""
        set_thesis(thesis_id, status="final_exam", additional_zip_path="uploads/old/additional.zip")

        result = seeded.upload_final_thesis(context, SubmittedFiles(thesis_file=make_upload()))

        assert result == {"message": "Final thesis uploaded successfully"}
        paths = final_file_paths(STUDENT_ID)
        with seeded.read_only() as (repos, _):
            thesis = repos.theses.find_by_id(thesis_id)
        assert thesis.status == "final_thesis"
        assert thesis.thesis_file_path == paths["thesis_file"]
        assert thesis.additional_zip_path == "uploads/old/additional.zip"
        assert seeded.uploads.exists(paths["thesis_file"])
        assert _statuses(seeded)[-1] == (ThesisStatus.FINAL_EXAM, ThesisStatus.FINAL_THESIS)

    def test_wrong_state(self, seeded, thesis_id, context, make_upload):
        """Should refuse an ongoing thesis and remove the temporary uploads."""
        upload = make_upload()
        zip_upload = make_upload(b"PK\x03\x04", "extra.zip", "application/zip")

        with pytest.raises(InvalidStateError) as exc_info:
            seeded.upload_final_thesis(context, SubmittedFiles(thesis_file=upload, additional_zip=zip_upload))

        assert exc_info.value.message == "Thesis is not in a final exam state"
        assert not os.path.exists(upload.path)
        assert not os.path.exists(zip_upload.path)
        with seeded.read_only() as (repos, _):
            assert repos.theses.find_by_id(thesis_id).status == "ongoing"

    def test_missing_thesis_file(self, seeded, thesis_id, context):
        """Should require the thesis file."""
        with pytest.raises(ValidationFailedError) as exc_info:
            seeded.upload_final_thesis(context, SubmittedFiles())
        assert exc_info.value.message == "Missing thesis file"

    def test_invalid_pdfa(self, seeded, thesis_id, context, make_upload, set_thesis):
        """Should keep the thesis in final_exam when the file is not PDF/A."""
        set_thesis(thesis_id, status="final_exam")
        with pytest.raises(InvalidFileFormatError):
            seeded.upload_final_thesis(context, SubmittedFiles(thesis_file=make_upload(PLAIN_PDF_BYTES)))

        with seeded.read_only() as (repos, _):
            assert repos.theses.find_by_id(thesis_id).status == "final_exam"


class TestLoggedStudent:
    """Test resolving the logged student context."""

    def test_context(self, seeded):
        """Should return the logged student's id."""
        assert seeded.logged_student_context() == StudentContext(student_id=STUDENT_ID)

    def test_no_logged_student(self, runtime):
        """Should raise unauthorized when nobody is logged in."""
        with pytest.raises(UnauthorizedError) as exc_info:
            runtime.logged_student_context()
        assert exc_info.value.status == 401
