"""Explicit per-entity repositories over a transactional session.

Every repository is bound to the Session of the current transaction, so
all reads and writes issued through a Repositories bundle belong to the
same unit of work.

Usage:
    >>> with session_scope(factory) as session:
    ...     repos = Repositories(session)
    ...     thesis = repos.theses.find_one(student_id="s123456")
"""

from typing import Any, Dict, Generic, Iterable, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from thesisflow import models

ModelT = TypeVar("ModelT", bound=models.Base)


class Repository(Generic[ModelT]):
    """Find, create, bulk-create and destroy for one mapped class."""

    def __init__(self, session: Session, model: Type[ModelT]):
        self.session = session
        self.model = model

    def _where(self, stmt, criteria: Sequence[Any], filters: Dict[str, Any]):
        for clause in criteria:
            stmt = stmt.where(clause)
        for name, value in filters.items():
            stmt = stmt.where(getattr(self.model, name) == value)
        return stmt

    def find_by_id(self, pk: Any) -> Optional[ModelT]:
        return self.session.get(self.model, pk)

    def find_one(self, *criteria: Any, order_by: Optional[Any] = None, **filters: Any) -> Optional[ModelT]:
        stmt = self._where(select(self.model), criteria, filters)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return self.session.scalars(stmt.limit(1)).first()

    def find_all(self, *criteria: Any, order_by: Optional[Any] = None, **filters: Any) -> List[ModelT]:
        stmt = self._where(select(self.model), criteria, filters)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return list(self.session.scalars(stmt))

    def find_by_ids(self, ids: Iterable[Any]) -> List[ModelT]:
        ids = list(ids)
        if not ids:
            return []
        return self.find_all(self.model.id.in_(ids))

    def count(self, *criteria: Any, **filters: Any) -> int:
        stmt = self._where(select(func.count()).select_from(self.model), criteria, filters)
        return self.session.scalar(stmt) or 0

    def create(self, **values: Any) -> ModelT:
        instance = self.model(**values)
        self.session.add(instance)
        self.session.flush()
        return instance

    def bulk_create(self, rows: Iterable[Dict[str, Any]]) -> List[ModelT]:
        instances = [self.model(**row) for row in rows]
        if instances:
            self.session.add_all(instances)
            self.session.flush()
        return instances

    def save(self, instance: ModelT) -> ModelT:
        self.session.add(instance)
        self.session.flush()
        return instance

    def destroy(self, *criteria: Any, **filters: Any) -> int:
        """Delete every matching row and return how many were removed."""
        stmt = self._where(delete(self.model), criteria, filters)
        result = self.session.execute(stmt.execution_options(synchronize_session="fetch"))
        return result.rowcount or 0


class Repositories:
    """All repositories bound to one transactional session."""

    def __init__(self, session: Session):
        self.session = session
        self.students = Repository(session, models.Student)
        self.logged_students = Repository(session, models.LoggedStudent)
        self.degree_programmes = Repository(session, models.DegreeProgramme)
        self.teachers = Repository(session, models.Teacher)
        self.applications = Repository(session, models.ThesisApplication)
        self.application_supervisors = Repository(session, models.ThesisApplicationSupervisorCoSupervisor)
        self.status_history = Repository(session, models.ThesisApplicationStatusHistory)
        self.theses = Repository(session, models.Thesis)
        self.thesis_supervisors = Repository(session, models.ThesisSupervisorCoSupervisor)
        self.sdgs = Repository(session, models.SustainableDevelopmentGoal)
        self.thesis_sdgs = Repository(session, models.ThesisSustainableDevelopmentGoal)
        self.keywords = Repository(session, models.Keyword)
        self.thesis_keywords = Repository(session, models.ThesisKeyword)
        self.embargo_motivations = Repository(session, models.EmbargoMotivation)
        self.embargoes = Repository(session, models.ThesisEmbargo)
        self.embargo_motivation_links = Repository(session, models.ThesisEmbargoMotivation)
        self.licenses = Repository(session, models.License)
        self.graduation_sessions = Repository(session, models.GraduationSession)
        self.deadlines = Repository(session, models.Deadline)


__all__ = [
    "Repository",
    "Repositories",
]
