"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
Statistics and ratings are owned by their `Exam` and cascade with it.
"""

from typing import Optional
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import UniqueConstraint
from datetime import datetime, timezone
from typing import List
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered user and its credential state.

    Fields:
    - `username`: unique login name
    - `password_hash`: salted hash (never store plaintext)
    - `password_reset_token` / `verification_token`: SHA-256 digests of
      secrets handed to the user once; the raw secret is never stored
    - `login_attempts` / `lock_until`: failed-login lockout state
    - `total_exams_taken` / `average_score` / `total_study_hours`: running
      totals over the user's attempts; `average_score` is whole-number rounded
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str = ""
    is_verified: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    last_login: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None
    password_reset_token: Optional[str] = Field(default=None, index=True)
    password_reset_expires: Optional[datetime] = None
    verification_token: Optional[str] = Field(default=None, index=True)
    verification_token_expires: Optional[datetime] = None
    login_attempts: int = 0
    lock_until: Optional[datetime] = None
    total_exams_taken: int = 0
    average_score: int = 0
    total_study_hours: float = 0.0
    last_active_date: Optional[datetime] = None


class Exam(SQLModel, table=True):
    """An exam with its denormalized statistics and rating aggregates."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: str = ""
    category: str = Field(default="Other", index=True)
    difficulty: str = Field(default="Medium", index=True)
    duration: int = 60
    total_questions: int = 1
    passing_score: float = 50.0
    created_by: Optional[int] = Field(default=None, foreign_key='user.id', index=True)
    is_published: bool = False
    views: int = 0
    attempts: int = Field(default=0, index=True)
    average_rating: float = Field(default=0.0, index=True)
    total_ratings: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    statistics: Optional['ExamStatistics'] = Relationship(
        back_populates='exam',
        sa_relationship_kwargs={'uselist': False, 'cascade': 'all, delete-orphan'},
    )
    ratings: List['Rating'] = Relationship(
        back_populates='exam',
        sa_relationship_kwargs={'cascade': 'all, delete-orphan', 'order_by': 'Rating.created_at'},
    )


class ExamStatistics(SQLModel, table=True):
    """Running attempt summary for one `Exam`.

    `passed_count` is kept exactly so `pass_rate` never drifts; only the
    percentage is exposed to API callers.
    """
    exam_id: Optional[int] = Field(default=None, foreign_key='exam.id', primary_key=True)
    total_attempts: int = 0
    average_score: float = 0.0
    highest_score: float = 0.0
    lowest_score: float = 0.0
    total_time_spent: float = 0.0
    average_time_per_attempt: float = 0.0
    completion_rate: float = 0.0
    pass_rate: float = 0.0
    passed_count: int = 0
    exam: Optional[Exam] = Relationship(back_populates='statistics')


class Rating(SQLModel, table=True):
    """A single user's rating of an `Exam`; one per user per exam."""
    __table_args__ = (UniqueConstraint('exam_id', 'user_id', name='uq_rating_exam_user'),)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    exam_id: Optional[int] = Field(default=None, foreign_key='exam.id', index=True)
    user_id: int = Field(foreign_key='user.id')
    score: int
    review: Optional[str] = None
    helpful: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    exam: Optional[Exam] = Relationship(back_populates='ratings')
