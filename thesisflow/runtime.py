"""ThesisRuntime orchestrator.

The runtime owns the database engine, the upload store and the ledger
emitter, and runs every operation as one unit of work: a single database
transaction plus an upload batch. The batch is committed only after the
transaction commits and discarded if it rolls back; temporary uploads
received for the operation are removed in every case.

Usage:
    >>> from thesisflow.config import Config
    >>> from thesisflow.runtime import ThesisRuntime
    >>> runtime = ThesisRuntime(Config(database_url="sqlite://", upload_root="/tmp/thesisflow"))
    >>> runtime.init_schema()
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from thesisflow import applications, conclusion, deadlines, drafts
from thesisflow.config import Config
from thesisflow.database import build_engine, build_session_factory, init_schema, session_scope
from thesisflow.errors import NotFoundError, UnauthorizedError
from thesisflow.ledger import LedgerEmitter, StatusLedger
from thesisflow.models import Thesis, ThesisApplication
from thesisflow.reconcile import to_int
from thesisflow.repository import Repositories
from thesisflow.types import StudentContext
from thesisflow.uploads import SubmittedFiles, UploadBatch, UploadStore, cleanup_uploads
from thesisflow.validation import (
    application_transition_validator,
    conclusion_draft_validator,
    conclusion_request_validator,
    conclusion_transition_validator,
)

logger = logging.getLogger(__name__)

MSG_DRAFT_SAVED = "Draft saved successfully"


class ThesisRuntime:
    """Entry point for every thesis lifecycle operation.

    Attributes:
        config: Runtime settings
        engine: SQLAlchemy engine
        session_factory: Factory of transactional sessions
        uploads: Upload store rooted at ``config.upload_root``
        emitter: Receives every ledger entry appended through this runtime
    """

    def __init__(
        self,
        config: Config,
        engine: Optional[Engine] = None,
        session_factory: Optional[sessionmaker] = None,
        emitter: Optional[LedgerEmitter] = None,
    ):
        self.config = config
        self.engine = engine or build_engine(config.database_url)
        self.session_factory = session_factory or build_session_factory(self.engine)
        self.uploads = UploadStore(config.upload_root)
        self.emitter = emitter or LedgerEmitter()

    def init_schema(self) -> None:
        init_schema(self.engine)

    @contextmanager
    def unit_of_work(
        self, files: Optional[SubmittedFiles] = None
    ) -> Iterator[Tuple[Repositories, StatusLedger, UploadBatch]]:
        """One transaction and one upload batch."""
        batch = self.uploads.batch()
        try:
            with session_scope(self.session_factory) as session:
                repos = Repositories(session)
                yield repos, StatusLedger(repos, self.emitter), batch
        except Exception:
            logger.debug("Operation failed, discarding %d staged uploads", len(batch.staged_paths))
            batch.discard()
            raise
        else:
            batch.commit()
        finally:
            if files is not None:
                cleanup_uploads(*files.all())

    @contextmanager
    def read_only(self) -> Iterator[Tuple[Repositories, StatusLedger]]:
        with session_scope(self.session_factory) as session:
            repos = Repositories(session)
            yield repos, StatusLedger(repos, self.emitter)

    def logged_student_context(self) -> StudentContext:
        """Context for the single logged-student row.

        Raises:
            UnauthorizedError: No logged student
        """
        with self.read_only() as (repos, _):
            logged = repos.logged_students.find_one()
            if logged is None:
                raise UnauthorizedError()
            return StudentContext(student_id=logged.student_id)

    def transition_application(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        application_transition_validator.require_valid(payload, "Invalid thesis application update payload")
        application_id = to_int(payload["id"])
        if application_id is None:
            raise NotFoundError(applications.MSG_APPLICATION_NOT_FOUND)

        with self.unit_of_work() as (repos, ledger, _):
            result = applications.transition_application(repos, ledger, application_id, payload["new_status"])
            if isinstance(result, Thesis):
                return conclusion.build_conclusion_response(repos, result.id)
            return result.to_dict()

    def transition_conclusion(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        conclusion_transition_validator.require_valid(payload, "Invalid thesis conclusion update payload")
        thesis_id = to_int(payload["thesisId"])
        if thesis_id is None:
            raise NotFoundError(conclusion.MSG_THESIS_NOT_FOUND)

        with self.unit_of_work() as (repos, ledger, _):
            thesis = conclusion.transition_conclusion(repos, ledger, thesis_id, payload["conclusionStatus"])
            return conclusion.build_conclusion_response(repos, thesis.id)

    def submit_conclusion_request(
        self,
        context: StudentContext,
        metadata: Dict[str, Any],
        files: SubmittedFiles,
    ) -> Dict[str, Any]:
        with self.unit_of_work(files) as (repos, ledger, batch):
            conclusion_request_validator.require_valid(metadata, "Invalid conclusion request payload")
            thesis = conclusion.submit_conclusion_request(
                repos, ledger, batch, context, metadata, files, self.config.resume_required_collegi
            )
            thesis_id = thesis.id

        with self.read_only() as (repos, _):
            return conclusion.build_conclusion_response(repos, thesis_id)

    def upload_final_thesis(self, context: StudentContext, files: SubmittedFiles) -> Dict[str, str]:
        with self.unit_of_work(files) as (repos, ledger, batch):
            return conclusion.upload_final_thesis(
                repos, ledger, batch, context, files, self.config.resume_required_collegi
            )

    def save_conclusion_draft(
        self,
        context: StudentContext,
        draft: Dict[str, Any],
        files: SubmittedFiles,
    ) -> Dict[str, str]:
        with self.unit_of_work(files) as (repos, _, batch):
            conclusion_draft_validator.require_valid(draft, "Invalid conclusion draft payload")
            drafts.save_conclusion_draft(repos, self.uploads, batch, context, draft, files)
        return {"message": MSG_DRAFT_SAVED}

    def get_conclusion_draft(self, context: StudentContext) -> Dict[str, Any]:
        with self.read_only() as (repos, _):
            return drafts.get_conclusion_draft(repos, self.uploads, context)

    def resolve_deadlines(
        self,
        context: StudentContext,
        now: Union[datetime, str, None] = None,
    ) -> Dict[str, Any]:
        with self.read_only() as (repos, ledger):
            return deadlines.resolve_deadlines(repos, ledger, context, now)

    def status_history(self, context: StudentContext) -> List[Dict[str, Any]]:
        """Ledger entries of the student's thesis, or of their latest application."""
        with self.read_only() as (repos, ledger):
            student = conclusion.resolve_student(repos, context)
            thesis = repos.theses.find_one(student_id=student.id)
            if thesis is not None:
                application_id = thesis.thesis_application_id
            else:
                application = repos.applications.find_one(
                    student_id=student.id,
                    order_by=ThesisApplication.submission_date.desc(),
                )
                if application is None:
                    raise NotFoundError(applications.MSG_APPLICATION_NOT_FOUND)
                application_id = application.id
            return [entry.to_dict() for entry in ledger.history(application_id)]


__all__ = [
    "ThesisRuntime",
]
