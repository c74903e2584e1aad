import random
import pytest
from examhub import models
from examhub.aggregators import StatisticsAggregator, UserStatisticsAggregator
from examhub.errors import PersistenceError


def _exam():
    return models.Exam(title='Algebra basics', statistics=models.ExamStatistics())


def test_scores_match_recomputation_from_history(store):
    exam = _exam()
    agg = StatisticsAggregator(store)
    scores = [72.5, 40.0, 99.0, 63.25, 88.0]
    for s in scores:
        agg.record_attempt(exam, s)
    stats = exam.statistics
    assert stats.total_attempts == len(scores)
    assert stats.average_score == pytest.approx(sum(scores) / len(scores), abs=1e-9)
    assert stats.highest_score == max(scores)
    assert stats.lowest_score == min(scores)


def test_long_random_history_stays_consistent(store):
    rng = random.Random(1234)
    exam = _exam()
    agg = StatisticsAggregator(store)
    scores, durations, passes = [], [], []
    for _ in range(500):
        s = round(rng.uniform(0, 100), 2)
        d = rng.randint(30, 3600)
        p = s >= 60
        scores.append(s)
        durations.append(d)
        passes.append(p)
        agg.record_attempt(exam, s, duration=d, passed=p)
    stats = exam.statistics
    assert stats.average_score == pytest.approx(sum(scores) / 500, abs=1e-9)
    assert stats.total_time_spent == sum(durations)
    assert stats.average_time_per_attempt == pytest.approx(sum(durations) / 500)
    assert stats.pass_rate == pytest.approx(sum(passes) / 500 * 100)


def test_first_attempt_replaces_zero_lowest_score(store):
    exam = _exam()
    agg = StatisticsAggregator(store)
    agg.record_attempt(exam, 55)
    assert exam.statistics.lowest_score == 55
    agg.record_attempt(exam, 80)
    assert exam.statistics.lowest_score == 55
    agg.record_attempt(exam, 12)
    assert exam.statistics.lowest_score == 12
    assert exam.statistics.highest_score == 80


def test_duration_and_pass_rate_only_change_when_supplied(store):
    exam = _exam()
    agg = StatisticsAggregator(store)
    agg.record_attempt(exam, 90, duration=600, passed=True)
    agg.record_attempt(exam, 30)
    stats = exam.statistics
    assert stats.total_time_spent == 600
    assert stats.average_time_per_attempt == 600
    assert stats.pass_rate == 100
    agg.record_attempt(exam, 40, duration=300, passed=False)
    assert stats.total_time_spent == 900
    assert stats.average_time_per_attempt == 300
    assert stats.pass_rate == pytest.approx(100 / 3)


def test_completion_rate_and_single_save_per_attempt(store):
    exam = _exam()
    agg = StatisticsAggregator(store)
    agg.record_attempt(exam, 70, passed=True)
    agg.record_attempt(exam, 20, passed=False)
    assert exam.statistics.completion_rate == 100
    assert store.saved == [exam, exam]


def test_missing_statistics_are_created_on_first_attempt(store):
    exam = models.Exam(title='Chemistry mock')
    StatisticsAggregator(store).record_attempt(exam, 64)
    assert exam.statistics.total_attempts == 1
    assert exam.statistics.average_score == 64


def test_store_failure_propagates(failing_store):
    exam = _exam()
    with pytest.raises(PersistenceError):
        StatisticsAggregator(failing_store).record_attempt(exam, 50)


def test_user_totals_use_rounded_running_mean(store, clock):
    user = models.User(username='student')
    agg = UserStatisticsAggregator(store, clock=clock)
    agg.record_exam(user, 70, duration=1800)
    agg.record_exam(user, 85, duration=5400)
    assert user.total_exams_taken == 2
    assert user.average_score == 78
    agg.record_exam(user, 90)
    assert user.average_score == 82
    assert user.total_study_hours == pytest.approx(2.0)
    assert user.last_active_date == clock()
    assert store.saved == [user, user, user]


def test_user_totals_store_failure_propagates(failing_store):
    with pytest.raises(PersistenceError):
        UserStatisticsAggregator(failing_store).record_exam(models.User(username='x'), 50)
