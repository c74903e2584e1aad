"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories,
the credential manager and the exam aggregators. Services are
intentionally thin: they look up entities, run the domain operation and
shape the response payloads.
"""

from datetime import timedelta
import json
import logging
import jwt
from typing import List, Optional
from sqlmodel import Session
from . import models, repositories
from .aggregators import RatingAggregator, StatisticsAggregator, UserStatisticsAggregator
from .config import settings
from .credentials import CredentialManager, Clock
from .errors import AccountLockedError, TokenError, ValidationError

logger = logging.getLogger("examhub.auth")
exam_logger = logging.getLogger("examhub.exams")


class AuthService:
    """Authentication related operations (register, login, token flows)."""
    def __init__(self, session: Session, clock: Optional[Clock] = None):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.credentials = CredentialManager(self.user_repo, clock=clock)

    def register(self, username: str, password: str):
        """Create a new user with a hashed password.

        Returns the persisted `User` and the raw email verification
        secret, which is not recoverable afterwards.
        """
        if self.user_repo.get_by_username(username):
            raise ValidationError('username already exists')
        u = models.User(username=username)
        self.credentials.set_password(u, password, is_new=True)
        u = self.user_repo.create(u)
        verification = self.credentials.generate_verification_token(u)
        logger.info("user_registered %s", json.dumps({"user_id": u.id}))
        return u, verification

    def authenticate(self, username: str, password: str) -> Optional[str]:
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails and raises
        `AccountLockedError` while the account is locked, whether or not
        the password is correct.
        """
        user = self.user_repo.get_by_username(username)
        if not user:
            return None
        if self.credentials.is_locked(user):
            raise AccountLockedError(user.lock_until)
        if not self.credentials.verify_password(user, password):
            self.credentials.register_failed_login(user)
            logger.info(
                "login_failed %s",
                json.dumps({"user_id": user.id, "login_attempts": user.login_attempts}),
            )
            return None
        self.credentials.register_successful_login(user)
        return self.issue_token(user)

    def issue_token(self, user: models.User) -> str:
        now = self.credentials.now()
        expire = now + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {
            "user_id": user.id,
            "username": user.username,
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    def user_for_token(self, payload: dict) -> models.User:
        """Resolve a decoded token payload to its user.

        Raises `TokenError` when the user is gone or the token was issued
        before the user's last password change.
        """
        user_id = payload.get('user_id')
        user = self.user_repo.get(user_id) if user_id else None
        if not user:
            raise TokenError('user not found')
        issued_at = payload.get('iat')
        if issued_at is None or self.credentials.changed_password_after(user, issued_at):
            raise TokenError('token issued before last password change')
        return user

    def change_password(self, user: models.User, current_password: str, new_password: str) -> str:
        """Replace the password and return a fresh token for the caller."""
        if not self.credentials.verify_password(user, current_password):
            raise ValidationError('current password is incorrect')
        self.credentials.set_password(user, new_password)
        self.user_repo.save(user)
        logger.info("password_changed %s", json.dumps({"user_id": user.id}))
        return self.issue_token(user)

    def request_password_reset(self, username: str) -> Optional[str]:
        """Issue a reset secret; unknown usernames silently yield `None`."""
        user = self.user_repo.get_by_username(username)
        if not user:
            return None
        raw = self.credentials.generate_password_reset_token(user)
        logger.info("password_reset_issued %s", json.dumps({"user_id": user.id}))
        return raw

    def reset_password(self, raw: str, new_password: str) -> models.User:
        user = self.user_repo.get_by_reset_token(CredentialManager.hash_token(raw))
        if not user:
            raise TokenError('token is invalid or has already been used')
        return self.credentials.reset_password(user, raw, new_password)

    def verify_email(self, raw: str) -> models.User:
        user = self.user_repo.get_by_verification_token(CredentialManager.hash_token(raw))
        if not user:
            raise TokenError('token is invalid or has already been used')
        return self.credentials.verify_email(user, raw)


def public_profile(user: models.User) -> dict:
    """User fields safe to return to clients (no hashes, tokens or lockout state)."""
    return {
        'id': user.id,
        'username': user.username,
        'isVerified': user.is_verified,
        'createdAt': user.created_at.isoformat() if user.created_at else None,
        'lastLogin': user.last_login.isoformat() if user.last_login else None,
        'statistics': {
            'totalExamsTaken': user.total_exams_taken,
            'averageScore': user.average_score,
            'totalStudyHours': user.total_study_hours,
            'lastActiveDate': user.last_active_date.isoformat() if user.last_active_date else None,
        },
    }


def statistics_payload(stats: Optional[models.ExamStatistics]) -> dict:
    stats = stats or models.ExamStatistics()
    return {
        'totalAttempts': stats.total_attempts,
        'averageScore': stats.average_score,
        'highestScore': stats.highest_score,
        'lowestScore': stats.lowest_score,
        'totalTimeSpent': stats.total_time_spent,
        'averageTimePerAttempt': stats.average_time_per_attempt,
        'completionRate': stats.completion_rate,
        'passRate': stats.pass_rate,
    }


def rating_payload(rating: models.Rating) -> dict:
    return {
        'id': rating.id,
        'userId': rating.user_id,
        'score': rating.score,
        'review': rating.review,
        'helpful': rating.helpful,
    }


def exam_payload(exam: models.Exam) -> dict:
    """Full exam representation using the public JSON field names."""
    return {
        'id': exam.id,
        'title': exam.title,
        'description': exam.description,
        'category': exam.category,
        'difficulty': exam.difficulty,
        'duration': exam.duration,
        'totalQuestions': exam.total_questions,
        'passingScore': exam.passing_score,
        'createdBy': exam.created_by,
        'isPublished': exam.is_published,
        'views': exam.views,
        'attempts': exam.attempts,
        'statistics': statistics_payload(exam.statistics),
        'ratings': [rating_payload(r) for r in exam.ratings],
        'averageRating': exam.average_rating,
        'totalRatings': exam.total_ratings,
    }


class ExamService:
    """Exam creation plus the attempt and rating aggregates."""
    def __init__(self, session: Session):
        self.session = session
        self.exam_repo = repositories.ExamRepository(session)
        self.statistics = StatisticsAggregator(self.exam_repo)
        self.ratings = RatingAggregator(self.exam_repo)
        self.user_statistics = UserStatisticsAggregator(repositories.UserRepository(session))

    def create_exam(self, creator_id: int, **fields) -> models.Exam:
        """Create an exam with zeroed statistics and no ratings."""
        exam = models.Exam(created_by=creator_id, statistics=models.ExamStatistics(), **fields)
        exam = self.exam_repo.create(exam)
        exam_logger.info("exam_created %s", json.dumps({"exam_id": exam.id, "created_by": creator_id}))
        return exam

    def get_exam(self, exam_id: int) -> models.Exam:
        """Fetch an exam and count the view."""
        exam = self.exam_repo.require(exam_id)
        exam.views += 1
        return self.exam_repo.save(exam)

    def record_attempt(self, exam_id: int, score: float, duration: Optional[float] = None,
                       passed: Optional[bool] = None, user: Optional[models.User] = None) -> models.ExamStatistics:
        """Fold an attempt into the exam statistics and the taker's totals.

        When `passed` is not given it is derived from the exam's
        `passing_score`. The exam and the user are saved separately.
        """
        exam = self.exam_repo.require(exam_id)
        if passed is None:
            passed = score >= exam.passing_score
        exam.attempts += 1
        stats = self.statistics.record_attempt(exam, score, duration=duration, passed=passed)
        if user is not None:
            self.user_statistics.record_exam(user, score, duration=duration)
        return stats

    def rate(self, exam_id: int, user_id: int, score: int, review: Optional[str] = None) -> models.Rating:
        exam = self.exam_repo.require(exam_id)
        return self.ratings.upsert_rating(exam, user_id, score, review)

    def remove_rating(self, exam_id: int, user_id: int) -> models.Exam:
        exam = self.exam_repo.require(exam_id)
        self.ratings.remove_rating(exam, user_id)
        return exam

    def mark_helpful(self, exam_id: int, rating_id: str) -> Optional[models.Rating]:
        exam = self.exam_repo.require(exam_id)
        return self.ratings.mark_helpful(exam, rating_id)

    def summary(self, exam_id: int) -> dict:
        """Return the compact exam summary used by listings.

        Percentages are rendered with two decimals, as strings.
        """
        exam = self.exam_repo.require(exam_id)
        stats = exam.statistics or models.ExamStatistics()
        return {
            'id': exam.id,
            'title': exam.title,
            'description': exam.description,
            'category': exam.category,
            'difficulty': exam.difficulty,
            'duration': exam.duration,
            'totalQuestions': exam.total_questions,
            'passingScore': exam.passing_score,
            'createdBy': exam.created_by,
            'isPublished': exam.is_published,
            'views': exam.views,
        'attempts': exam.attempts,
            'averageRating': exam.average_rating,
            'totalRatings': exam.total_ratings,
            'statistics': {
                'totalAttempts': stats.total_attempts,
                'averageScore': f"{stats.average_score:.2f}",
                'highestScore': stats.highest_score,
                'lowestScore': stats.lowest_score,
                'passRate': f"{stats.pass_rate:.2f}",
                'completionRate': f"{stats.completion_rate:.2f}",
            },
            'createdAt': exam.created_at.isoformat(),
            'updatedAt': exam.updated_at.isoformat(),
        }

    def top_rated(self, limit: int = 10) -> List[models.Exam]:
        return self.exam_repo.list_top_rated(limit)

    def most_attempted(self, limit: int = 10) -> List[models.Exam]:
        return self.exam_repo.list_most_attempted(limit)

    def by_creator(self, creator_id: int, include_unpublished: bool = False) -> List[models.Exam]:
        return self.exam_repo.list_by_creator(creator_id, include_unpublished)
