"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
exams). Repositories return SQLModel objects and perform
commits/refreshes where appropriate. Every repository exposes `save`,
which is the persistence port the aggregators and the credential
manager depend on; store failures surface as `PersistenceError`.
"""

from typing import List, Optional, Protocol, TypeVar
from sqlmodel import Session, select
from sqlalchemy.exc import SQLAlchemyError
from . import models
from .errors import NotFoundError, PersistenceError

T = TypeVar('T')


class EntityStore(Protocol):
    """Anything that can atomically persist one entity."""
    def save(self, entity: T) -> T:
        ...


class _SessionRepository:
    def __init__(self, session: Session):
        self.session = session

    def save(self, entity):
        """Commit `entity` and refresh it; raise `PersistenceError` on failure."""
        try:
            self.session.add(entity)
            self.session.commit()
            self.session.refresh(entity)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(f"failed to save {type(entity).__name__}") from exc
        return entity

    def _get(self, model, entity_id):
        try:
            return self.session.get(model, entity_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to load {model.__name__} {entity_id}") from exc

    def _first(self, stmt):
        try:
            return self.session.exec(stmt).first()
        except SQLAlchemyError as exc:
            raise PersistenceError("query failed") from exc

    def _all(self, stmt):
        try:
            return self.session.exec(stmt).all()
        except SQLAlchemyError as exc:
            raise PersistenceError("query failed") from exc


class UserRepository(_SessionRepository):
    """CRUD operations for `User` objects."""

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        return self.save(user)

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self._first(stmt)

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self._get(models.User, user_id)

    def get_by_reset_token(self, digest: str) -> Optional[models.User]:
        stmt = select(models.User).where(models.User.password_reset_token == digest)
        return self._first(stmt)

    def get_by_verification_token(self, digest: str) -> Optional[models.User]:
        stmt = select(models.User).where(models.User.verification_token == digest)
        return self._first(stmt)


class ExamRepository(_SessionRepository):
    """Load and persist `Exam` aggregates with their statistics and ratings."""

    def create(self, exam: models.Exam) -> models.Exam:
        """Persist a new exam, attaching zeroed statistics when missing."""
        if exam.statistics is None:
            exam.statistics = models.ExamStatistics()
        return self.save(exam)

    def get(self, exam_id: int) -> Optional[models.Exam]:
        """Fetch an exam by id."""
        return self._get(models.Exam, exam_id)

    def require(self, exam_id: int) -> models.Exam:
        """Fetch an exam by id or raise `NotFoundError`."""
        exam = self.get(exam_id)
        if exam is None:
            raise NotFoundError(f"exam not found: {exam_id}")
        return exam

    def list_top_rated(self, limit: int = 10) -> List[models.Exam]:
        """Return published exams ordered by average rating, best first."""
        stmt = (
            select(models.Exam)
            .where(models.Exam.is_published == True)  # noqa: E712
            .order_by(models.Exam.average_rating.desc(), models.Exam.total_ratings.desc())
            .limit(limit)
        )
        return self._all(stmt)

    def list_most_attempted(self, limit: int = 10) -> List[models.Exam]:
        """Return published exams ordered by attempt count, busiest first."""
        stmt = (
            select(models.Exam)
            .where(models.Exam.is_published == True)  # noqa: E712
            .order_by(models.Exam.attempts.desc())
            .limit(limit)
        )
        return self._all(stmt)

    def list_by_creator(self, creator_id: int, include_unpublished: bool = False) -> List[models.Exam]:
        """Return a creator's exams, newest first; drafts only on request."""
        stmt = select(models.Exam).where(models.Exam.created_by == creator_id)
        if not include_unpublished:
            stmt = stmt.where(models.Exam.is_published == True)  # noqa: E712
        return self._all(stmt.order_by(models.Exam.created_at.desc()))
