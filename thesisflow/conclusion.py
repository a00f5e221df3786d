"""Conclusion workflow of an approved thesis.

- transition_conclusion: administrative move along the conclusion graph
- submit_conclusion_request: the student's conclusion package (text, files,
  co-supervisors, SDGs, keywords, embargo)
- upload_final_thesis: the final PDF/A after the final exam
- build_conclusion_response: the thesis with all its related collections

Every function runs inside the caller's transaction (``repos``/``ledger``)
and stages files on the caller's UploadBatch; the runtime commits both.
"""

import logging
import posixpath
from typing import Any, Dict, FrozenSet, Optional, Tuple

from thesisflow.errors import InvalidStateError, NotFoundError, ValidationFailedError
from thesisflow.ledger import StatusLedger
from thesisflow.models import Student, Thesis, ThesisEmbargoMotivation, ThesisKeyword, utcnow
from thesisflow.pdfa import validate_pdfa
from thesisflow.reconcile import (
    reconcile_co_supervisors,
    reconcile_embargo,
    reconcile_keywords,
    reconcile_sdgs,
    to_int,
)
from thesisflow.repository import Repositories
from thesisflow.state_machine import validate_conclusion_transition
from thesisflow.types import Language, StudentContext, SupervisorScope, ThesisStatus
from thesisflow.uploads import CONCLUSION_REQUEST_DIR, FINAL_THESIS_DIR, SubmittedFiles, UploadBatch

logger = logging.getLogger(__name__)

MSG_STUDENT_NOT_FOUND = "Student not found"
MSG_THESIS_NOT_FOUND = "Thesis not found"
MSG_THESIS_NOT_FOUND_AFTER_UPDATE = "Thesis not found after update"
MSG_INVALID_REQUEST_STATE = "Thesis is not in a valid state for conclusion request"
MSG_MISSING_TITLE_OR_ABSTRACT = "Missing thesis title or abstract"
MSG_MISSING_THESIS_FILE = "Missing thesis file"
MSG_MISSING_RESUME = "Missing thesis resume"
MSG_MISSING_RESUME_FILE = "Missing thesis resume file"
MSG_NOT_FINAL_EXAM = "Thesis is not in a final exam state"
MSG_FINAL_UPLOAD_SUCCESS = "Final thesis uploaded successfully"

REQUESTABLE_STATES = frozenset({ThesisStatus.ONGOING.value, ThesisStatus.CONCLUSION_REJECTED.value})


def resolve_student(repos: Repositories, context: StudentContext) -> Student:
    student = repos.students.find_by_id(context.student_id)
    if student is None:
        raise NotFoundError(MSG_STUDENT_NOT_FOUND)
    return student


def resolve_student_thesis(repos: Repositories, context: StudentContext) -> Tuple[Student, Thesis]:
    """The logged student and their thesis, or NotFoundError."""
    student = resolve_student(repos, context)
    thesis = repos.theses.find_one(student_id=student.id)
    if thesis is None:
        raise NotFoundError(MSG_THESIS_NOT_FOUND)
    return student, thesis


def is_resume_required(repos: Repositories, student: Student, resume_required_collegi: FrozenSet[str]) -> bool:
    if not student.degree_id:
        return False
    degree = repos.degree_programmes.find_by_id(student.degree_id)
    return degree is not None and degree.id_collegio in resume_required_collegi


def request_file_paths(student_id: str) -> Dict[str, str]:
    base = posixpath.join(CONCLUSION_REQUEST_DIR, student_id)
    return {
        "thesis_file": posixpath.join(base, f"thesis_{student_id}.pdf"),
        "thesis_resume": posixpath.join(base, f"resume_{student_id}.pdf"),
        "additional_zip": posixpath.join(base, f"additional_{student_id}.zip"),
    }


def final_file_paths(student_id: str) -> Dict[str, str]:
    base = posixpath.join(FINAL_THESIS_DIR, student_id)
    return {
        "thesis_file": posixpath.join(base, f"final_thesis_{student_id}.pdf"),
        "thesis_resume": posixpath.join(base, f"final_resume_{student_id}.pdf"),
        "additional_zip": posixpath.join(base, f"final_additional_{student_id}.zip"),
    }


def _present(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(value.strip())


def transition_conclusion(
    repos: Repositories,
    ledger: StatusLedger,
    thesis_id: Any,
    new_status: str,
) -> Thesis:
    """Move a thesis along the conclusion graph.

    Raises:
        NotFoundError: No thesis with that id
        InvalidTransitionError: Same status, unknown source or missing edge
    """
    thesis = repos.theses.find_by_id(thesis_id)
    if thesis is None:
        raise NotFoundError(MSG_THESIS_NOT_FOUND)

    target = validate_conclusion_transition(thesis.status, new_status)
    ledger.append(thesis.thesis_application_id, thesis.status, target)
    thesis.status = target.value
    if target == ThesisStatus.CONCLUSION_APPROVED:
        thesis.thesis_conclusion_confirmation_date = utcnow()
    repos.theses.save(thesis)
    return thesis


def submit_conclusion_request(
    repos: Repositories,
    ledger: StatusLedger,
    batch: UploadBatch,
    context: StudentContext,
    metadata: Dict[str, Any],
    files: SubmittedFiles,
    resume_required_collegi: FrozenSet[str],
) -> Thesis:
    """Record a student's conclusion request and move the thesis to
    ``conclusion_requested``.

    Args:
        metadata: Request fields (title, titleEng, abstract, abstractEng,
            language, licenseId, coSupervisors, sdgs, keywords, embargo);
            absent collections are left untouched
        files: Thesis file (required), resume and additional zip
        resume_required_collegi: Collegio codes that make the resume mandatory

    Raises:
        NotFoundError: Student, thesis or referenced catalog entries missing
        InvalidStateError: Thesis not in ongoing or conclusion_rejected
        ValidationFailedError: Missing text or files
        InvalidFileFormatError: Thesis file or resume is not PDF/A
        IncompleteEmbargoError: Embargo without duration or motivations
    """
    student, thesis = resolve_student_thesis(repos, context)
    if thesis.status not in REQUESTABLE_STATES:
        raise InvalidStateError(MSG_INVALID_REQUEST_STATE)
    if not _present(metadata.get("title")) or not _present(metadata.get("abstract")):
        raise ValidationFailedError(MSG_MISSING_TITLE_OR_ABSTRACT)
    if files.thesis_file is None:
        raise ValidationFailedError(MSG_MISSING_THESIS_FILE)
    if files.thesis_resume is None and is_resume_required(repos, student, resume_required_collegi):
        raise ValidationFailedError(MSG_MISSING_RESUME)

    language = metadata.get("language") or thesis.language or Language.IT.value
    thesis.language = language
    thesis.title = metadata["title"]
    thesis.abstract = metadata["abstract"]
    if language == Language.EN.value:
        thesis.title_eng = metadata["title"]
        thesis.abstract_eng = metadata["abstract"]
    else:
        thesis.title_eng = metadata.get("titleEng")
        thesis.abstract_eng = metadata.get("abstractEng")
    thesis.license_id = to_int(metadata.get("licenseId"))

    validate_pdfa(files.thesis_file.path, "Thesis file")
    if files.thesis_resume is not None:
        validate_pdfa(files.thesis_resume.path, "Thesis resume")

    paths = request_file_paths(student.id)
    thesis.thesis_file = None
    thesis.thesis_resume = None
    thesis.additional_zip = None
    thesis.thesis_file_path = batch.stage(files.thesis_file, paths["thesis_file"])
    thesis.thesis_resume_path = (
        batch.stage(files.thesis_resume, paths["thesis_resume"]) if files.thesis_resume is not None else None
    )
    thesis.additional_zip_path = (
        batch.stage(files.additional_zip, paths["additional_zip"]) if files.additional_zip is not None else None
    )

    reconcile_co_supervisors(repos, thesis.id, metadata.get("coSupervisors"), SupervisorScope.LIVE)
    # the draft working set is superseded by the committed live set
    repos.thesis_supervisors.destroy(thesis_id=thesis.id, scope=SupervisorScope.DRAFT.value)
    reconcile_sdgs(repos, thesis.id, metadata.get("sdgs"))
    reconcile_keywords(repos, thesis.id, metadata.get("keywords"))
    reconcile_embargo(repos, thesis.id, metadata.get("embargo"))

    ledger.append(thesis.thesis_application_id, thesis.status, ThesisStatus.CONCLUSION_REQUESTED)
    thesis.thesis_conclusion_request_date = utcnow()
    thesis.status = ThesisStatus.CONCLUSION_REQUESTED.value
    repos.theses.save(thesis)
    logger.info("Conclusion request submitted for thesis %s", thesis.id)
    return thesis


def upload_final_thesis(
    repos: Repositories,
    ledger: StatusLedger,
    batch: UploadBatch,
    context: StudentContext,
    files: SubmittedFiles,
    resume_required_collegi: FrozenSet[str],
) -> Dict[str, str]:
    """Store the final thesis and move the thesis to ``final_thesis``.

    A resume or zip that is not uploaded keeps the stored path.

    Raises:
        ValidationFailedError: Missing thesis file, or missing required resume
        NotFoundError: Student or thesis missing
        InvalidStateError: Thesis not in final_exam
        InvalidFileFormatError: Thesis file or resume is not PDF/A
    """
    if files.thesis_file is None:
        raise ValidationFailedError(MSG_MISSING_THESIS_FILE)

    student, thesis = resolve_student_thesis(repos, context)
    if thesis.status != ThesisStatus.FINAL_EXAM.value:
        raise InvalidStateError(MSG_NOT_FINAL_EXAM)
    if (
        files.thesis_resume is None
        and not thesis.thesis_resume_path
        and is_resume_required(repos, student, resume_required_collegi)
    ):
        raise ValidationFailedError(MSG_MISSING_RESUME_FILE)

    validate_pdfa(files.thesis_file.path, "Thesis file")
    if files.thesis_resume is not None:
        validate_pdfa(files.thesis_resume.path, "Thesis resume")

    paths = final_file_paths(student.id)
    thesis_file_path = batch.stage(files.thesis_file, paths["thesis_file"])
    resume_path = (
        batch.stage(files.thesis_resume, paths["thesis_resume"])
        if files.thesis_resume is not None
        else thesis.thesis_resume_path
    )
    zip_path = (
        batch.stage(files.additional_zip, paths["additional_zip"])
        if files.additional_zip is not None
        else thesis.additional_zip_path
    )

    ledger.append(thesis.thesis_application_id, ThesisStatus.FINAL_EXAM, ThesisStatus.FINAL_THESIS)
    thesis.thesis_file_path = thesis_file_path
    thesis.thesis_resume_path = resume_path
    thesis.additional_zip_path = zip_path
    thesis.status = ThesisStatus.FINAL_THESIS.value
    repos.theses.save(thesis)
    logger.info("Final thesis uploaded for thesis %s", thesis.id)
    return {"message": MSG_FINAL_UPLOAD_SUCCESS}


def build_conclusion_response(repos: Repositories, thesis_id: int) -> Dict[str, Any]:
    """Serialize a thesis with its keywords, embargo, SDGs and live supervisors."""
    thesis = repos.theses.find_by_id(thesis_id)
    if thesis is None:
        raise NotFoundError(MSG_THESIS_NOT_FOUND_AFTER_UPDATE)

    keywords = [
        {"keywordId": kw.keyword_id, "keywordOther": kw.keyword_other}
        for kw in repos.thesis_keywords.find_all(thesis_id=thesis.id, order_by=ThesisKeyword.id)
    ]

    embargo = repos.embargoes.find_one(thesis_id=thesis.id)
    embargo_data = None
    if embargo is not None:
        embargo_data = {
            "id": embargo.id,
            "duration": embargo.duration,
            "motivations": [
                {"motivationId": m.motivation_id, "otherMotivation": m.other_motivation}
                for m in repos.embargo_motivation_links.find_all(
                    thesis_embargo_id=embargo.id, order_by=ThesisEmbargoMotivation.id
                )
            ],
        }

    sdgs = [
        {"goalId": sdg.goal_id, "level": sdg.sdg_level}
        for sdg in repos.thesis_sdgs.find_all(thesis_id=thesis.id)
    ]
    supervisors = [
        {"teacherId": link.teacher_id, "isSupervisor": link.is_supervisor}
        for link in repos.thesis_supervisors.find_all(thesis_id=thesis.id, scope=SupervisorScope.LIVE.value)
    ]

    return {
        "id": thesis.id,
        "title": thesis.title,
        "titleEng": thesis.title_eng,
        "abstract": thesis.abstract,
        "abstractEng": thesis.abstract_eng,
        "language": thesis.language,
        "licenseId": thesis.license_id,
        "status": thesis.status,
        "thesisApplicationId": thesis.thesis_application_id,
        "studentId": thesis.student_id,
        "thesisFilePath": thesis.thesis_file_path,
        "thesisResumePath": thesis.thesis_resume_path,
        "additionalZipPath": thesis.additional_zip_path,
        "thesisConclusionRequestDate": (
            thesis.thesis_conclusion_request_date.isoformat()
            if thesis.thesis_conclusion_request_date is not None
            else None
        ),
        "keywords": keywords,
        "embargo": embargo_data,
        "sdgs": sdgs,
        "supervisors": supervisors,
    }


__all__ = [
    "REQUESTABLE_STATES",
    "resolve_student",
    "resolve_student_thesis",
    "is_resume_required",
    "request_file_paths",
    "final_file_paths",
    "transition_conclusion",
    "submit_conclusion_request",
    "upload_final_thesis",
    "build_conclusion_response",
]
