"""Incremental aggregates maintained on exams and users.

`StatisticsAggregator` folds each completed attempt into the exam's
running statistics without re-reading attempt history, and
`RatingAggregator` keeps `average_rating`/`total_ratings` in step with
the exam's resident rating list. `UserStatisticsAggregator` keeps the
per-user totals for the person taking the exam. Each mutates its entity
in memory and then issues exactly one `store.save`; none catch store
errors.
"""

import json
import logging
import math
from datetime import datetime
from typing import Callable, Optional
from . import models
from .repositories import EntityStore

logger = logging.getLogger("examhub.exams")


class StatisticsAggregator:
    """Maintain `ExamStatistics` as attempt results arrive."""

    def __init__(self, store: EntityStore):
        self.store = store

    def record_attempt(self, exam: models.Exam, score: float, duration: Optional[float] = None,
                       passed: Optional[bool] = None) -> models.ExamStatistics:
        """Fold one attempt `{score, duration, passed}` into the exam statistics.

        The update order matters: the attempt counter is incremented
        first so the "first attempt" branch for `lowest_score` and the
        running-mean recurrence both see the post-increment count.
        `duration` and `passed` are optional; omitted values leave the
        time and pass-rate figures untouched.
        """
        stats = exam.statistics
        if stats is None:
            stats = exam.statistics = models.ExamStatistics()

        stats.total_attempts += 1
        n = stats.total_attempts

        if score > stats.highest_score:
            stats.highest_score = score

        # the zero default would otherwise pin lowest_score at 0
        if n == 1:
            stats.lowest_score = score
        elif score < stats.lowest_score:
            stats.lowest_score = score

        stats.average_score = (stats.average_score * (n - 1) + score) / n

        if duration is not None:
            stats.total_time_spent += duration
            stats.average_time_per_attempt = stats.total_time_spent / n

        if passed is not None:
            if passed:
                stats.passed_count += 1
            stats.pass_rate = stats.passed_count / n * 100

        # every recorded attempt counts as a completion
        stats.completion_rate = 100.0

        self.store.save(exam)
        logger.info(
            "attempt_recorded %s",
            json.dumps({"exam_id": exam.id, "total_attempts": n, "score": score}),
        )
        return stats


class RatingAggregator:
    """Add, replace, remove and up-vote ratings on an exam."""

    def __init__(self, store: EntityStore):
        self.store = store

    def upsert_rating(self, exam: models.Exam, user_id: int, score: int,
                      review: Optional[str] = None) -> models.Rating:
        """Create or replace `user_id`'s rating, keeping its id and helpful count."""
        rating = self._find_by_user(exam, user_id)
        if rating is not None:
            rating.score = score
            rating.review = review
            rating.updated_at = models.utcnow()
        else:
            rating = models.Rating(user_id=user_id, score=score, review=review)
            exam.ratings.append(rating)
        self._recalculate(exam)
        self.store.save(exam)
        logger.info(
            "rating_upserted %s",
            json.dumps({"exam_id": exam.id, "user_id": user_id, "total_ratings": exam.total_ratings}),
        )
        return rating

    def remove_rating(self, exam: models.Exam, user_id: int) -> None:
        """Drop `user_id`'s rating; a missing rating is not an error."""
        exam.ratings = [r for r in exam.ratings if r.user_id != user_id]
        self._recalculate(exam)
        self.store.save(exam)
        logger.info(
            "rating_removed %s",
            json.dumps({"exam_id": exam.id, "user_id": user_id, "total_ratings": exam.total_ratings}),
        )

    def mark_helpful(self, exam: models.Exam, rating_id: str) -> Optional[models.Rating]:
        """Increment a rating's helpful count.

        Stale rating ids are ignored and nothing is saved; the caller
        receives `None` instead of an error.
        """
        rating = next((r for r in exam.ratings if r.id == rating_id), None)
        if rating is None:
            return None
        rating.helpful += 1
        self.store.save(exam)
        logger.info(
            "rating_helpful %s",
            json.dumps({"exam_id": exam.id, "rating_id": rating_id, "helpful": rating.helpful}),
        )
        return rating

    @staticmethod
    def _find_by_user(exam: models.Exam, user_id: int) -> Optional[models.Rating]:
        return next((r for r in exam.ratings if r.user_id == user_id), None)

    @staticmethod
    def _recalculate(exam: models.Exam) -> None:
        if exam.ratings:
            exam.average_rating = sum(r.score for r in exam.ratings) / len(exam.ratings)
            exam.total_ratings = len(exam.ratings)
        else:
            exam.average_rating = 0.0
            exam.total_ratings = 0
        exam.updated_at = models.utcnow()


class UserStatisticsAggregator:
    """Maintain a user's running totals across every exam they take."""

    def __init__(self, store: EntityStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or models.utcnow

    def record_exam(self, user: models.User, score: float, duration: Optional[float] = None) -> models.User:
        """Fold one finished exam into the user's totals.

        `duration` is in seconds and accumulates as study hours. The
        stored average is rounded half up to a whole number after every
        update, so it drifts from the exact mean over long histories.
        """
        n = user.total_exams_taken + 1
        average = (user.average_score * (n - 1) + score) / n
        user.total_exams_taken = n
        user.average_score = int(math.floor(average + 0.5))
        if duration:
            user.total_study_hours += duration / 3600
        user.last_active_date = self.clock()
        self.store.save(user)
        logger.info(
            "user_statistics_updated %s",
            json.dumps({"user_id": user.id, "total_exams_taken": n}),
        )
        return user
