"""Conclusion request drafts.

While a thesis is ongoing the student can save a partial conclusion
request: text, license, draft-scope co-supervisors, SDGs, embargo and the
three files, which live under ``uploads/thesis_conclusion_draft/<studentId>/``
with their original file names. Only keys present in the payload are
applied.
"""

import logging
import os
import posixpath
from typing import Any, Dict, Optional

from thesisflow.conclusion import resolve_student_thesis
from thesisflow.errors import InvalidStateError, ValidationFailedError
from thesisflow.models import Thesis, utcnow
from thesisflow.pdfa import is_pdf
from thesisflow.reconcile import (
    clear_embargo,
    normalize_motivations,
    reconcile_co_supervisors,
    reconcile_sdgs,
    replace_embargo,
    to_int,
)
from thesisflow.repository import Repositories
from thesisflow.types import Language, SdgLevel, StudentContext, SupervisorScope, ThesisStatus
from thesisflow.uploads import DRAFT_DIR, SubmittedFiles, UploadBatch, UploadedFile, UploadStore

logger = logging.getLogger(__name__)

MSG_DRAFT_NOT_ALLOWED = "No draft can be saved for current thesis status"
MSG_FILE_MUST_BE_PDF = "File must be a PDF file"

_MISSING = object()

# upload slot -> (thesis column, removal flag)
_DRAFT_SLOTS = (
    ("thesis_file", "thesis_file_path", "removeThesisFile"),
    ("thesis_resume", "thesis_resume_path", "removeThesisResume"),
    ("additional_zip", "additional_zip_path", "removeAdditionalZip"),
)


def normalize_draft_text_fields(draft: Dict[str, Any]) -> Dict[str, Any]:
    """Pair Italian and English text fields.

    For an English thesis both columns take the main field, falling back to
    the English one when it is empty; otherwise the columns are taken as
    sent. Keys absent from the payload are reported as ``_MISSING``.
    """
    if draft.get("language") != Language.EN.value:
        return {
            "title": draft.get("title", _MISSING),
            "title_eng": draft.get("titleEng", _MISSING),
            "abstract": draft.get("abstract", _MISSING),
            "abstract_eng": draft.get("abstractEng", _MISSING),
        }

    def pick(main: str, english: str) -> Any:
        value = draft.get(main)
        if value is None:
            value = draft.get(english, _MISSING if main not in draft else None)
        return value

    title = pick("title", "titleEng")
    abstract = pick("abstract", "abstractEng")
    return {"title": title, "title_eng": title, "abstract": abstract, "abstract_eng": abstract}


def _save_draft_files(
    store: UploadStore,
    batch: UploadBatch,
    thesis: Thesis,
    student_id: str,
    draft: Dict[str, Any],
    files: SubmittedFiles,
) -> None:
    for slot, column, remove_flag in _DRAFT_SLOTS:
        upload: Optional[UploadedFile] = getattr(files, slot)
        stored = store.resolve_valid_draft_file_path(getattr(thesis, column), student_id)

        if upload is None:
            if draft.get(remove_flag) and stored:
                batch.delete_on_commit(stored)
                setattr(thesis, column, None)
            continue

        destination = posixpath.join(DRAFT_DIR, student_id, os.path.basename(upload.filename or slot))
        if stored and stored != destination:
            batch.delete_on_commit(stored)
        setattr(thesis, column, batch.stage(upload, destination))


def save_conclusion_draft(
    repos: Repositories,
    store: UploadStore,
    batch: UploadBatch,
    context: StudentContext,
    draft: Dict[str, Any],
    files: SubmittedFiles,
) -> Thesis:
    """Save the student's draft conclusion request.

    Raises:
        NotFoundError: Student, thesis, teacher, goal or motivation missing
        InvalidStateError: Thesis is not ongoing
        ValidationFailedError: Thesis file or resume is not a PDF
    """
    student, thesis = resolve_student_thesis(repos, context)
    if thesis.status != ThesisStatus.ONGOING.value:
        raise InvalidStateError(MSG_DRAFT_NOT_ALLOWED)
    for upload in (files.thesis_file, files.thesis_resume):
        if upload is not None and not is_pdf(upload.path):
            raise ValidationFailedError(MSG_FILE_MUST_BE_PDF)

    for column, value in normalize_draft_text_fields(draft).items():
        if value is not _MISSING:
            setattr(thesis, column, value)
    if "language" in draft:
        thesis.language = draft["language"]
    if "licenseId" in draft:
        thesis.license_id = to_int(draft["licenseId"])
    elif draft.get("embargo") is not None:
        # an embargo replaces any license choice
        thesis.license_id = None
    thesis.thesis_draft_date = utcnow()

    _save_draft_files(store, batch, thesis, student.id, draft, files)
    repos.theses.save(thesis)

    if "coSupervisors" in draft:
        reconcile_co_supervisors(repos, thesis.id, draft["coSupervisors"] or [], SupervisorScope.DRAFT)
    if "sdgs" in draft:
        reconcile_sdgs(repos, thesis.id, draft["sdgs"] or [], default_level=SdgLevel.SECONDARY.value)

    if "embargo" in draft:
        embargo = draft["embargo"]
        clear_embargo(repos, thesis.id)
        if embargo and embargo.get("duration"):
            replace_embargo(repos, thesis.id, embargo["duration"], normalize_motivations(embargo.get("motivations")))
    elif draft.get("licenseId") is not None:
        clear_embargo(repos, thesis.id)

    logger.info("Draft saved for thesis %s", thesis.id)
    return thesis


def get_conclusion_draft(repos: Repositories, store: UploadStore, context: StudentContext) -> Dict[str, Any]:
    """The student's saved draft; file paths that no longer resolve are null."""
    student, thesis = resolve_student_thesis(repos, context)

    links = repos.thesis_supervisors.find_all(
        thesis_id=thesis.id, is_supervisor=False, scope=SupervisorScope.DRAFT.value
    )
    teacher_ids = [link.teacher_id for link in links]
    co_supervisors = [teacher.to_dict() for teacher in repos.teachers.find_by_ids(teacher_ids)]

    embargo = repos.embargoes.find_one(thesis_id=thesis.id)
    embargo_data = None
    if embargo is not None:
        embargo_data = {
            "duration": embargo.duration,
            "motivations": [
                {"motivationId": m.motivation_id, "otherMotivation": m.other_motivation}
                for m in repos.embargo_motivation_links.find_all(thesis_embargo_id=embargo.id)
            ],
        }

    return {
        "title": thesis.title,
        "titleEng": thesis.title_eng,
        "abstract": thesis.abstract,
        "abstractEng": thesis.abstract_eng,
        "language": thesis.language,
        "licenseId": thesis.license_id,
        "thesisFilePath": store.resolve_valid_draft_file_path(thesis.thesis_file_path, student.id),
        "thesisResumePath": store.resolve_valid_draft_file_path(thesis.thesis_resume_path, student.id),
        "additionalZipPath": store.resolve_valid_draft_file_path(thesis.additional_zip_path, student.id),
        "thesisDraftDate": thesis.thesis_draft_date.isoformat() if thesis.thesis_draft_date else None,
        "coSupervisors": co_supervisors,
        "sdgs": [
            {"goalId": sdg.goal_id, "level": sdg.sdg_level}
            for sdg in repos.thesis_sdgs.find_all(thesis_id=thesis.id)
        ],
        "embargo": embargo_data,
    }


__all__ = [
    "normalize_draft_text_fields",
    "save_conclusion_draft",
    "get_conclusion_draft",
]
