from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

import db
from engines.quiz_stats import QuizStatsAggregator, build_quiz_stats
from schemas import MasteryLevel, QuizAttempt

START = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)


def make_attempt(score: int, max_score: int = 10, *, minutes: int = 0, quiz_id: str = "q1") -> QuizAttempt:
    return QuizAttempt.create(
        "learner",
        "c1",
        "subchapter",
        quiz_id,
        score,
        max_score,
        total_questions=max_score,
        correct_count=score,
        completed_at=START + timedelta(minutes=minutes),
    )


def test_empty_history_yields_zero_value_stats():
    stats = build_quiz_stats("q1", [])

    assert stats.quiz_id == "q1"
    assert stats.attempt_count == 0
    assert stats.best_score is None
    assert stats.latest_score is None
    assert stats.best_mastery is None
    assert stats.history == []


def test_latest_is_first_and_best_is_maximum():
    history = [make_attempt(5, minutes=20), make_attempt(9, minutes=10), make_attempt(3, minutes=0)]

    stats = build_quiz_stats("q1", history)

    assert stats.attempt_count == 3
    assert stats.latest_score == pytest.approx(50.0)
    assert stats.best_score == pytest.approx(90.0)
    assert stats.best_mastery is MasteryLevel.EXPERT
    assert all(stats.best_score >= attempt.percentage for attempt in history)


def test_tied_best_score_reports_most_recent_attempt():
    newest = make_attempt(8, minutes=30)
    older = make_attempt(8, minutes=0)
    # Recorded mastery differs so the winner is observable.
    older = older.model_copy(update={"mastery_level": MasteryLevel.DEVELOPING})

    stats = build_quiz_stats("q1", [newest, older])

    assert stats.best_score == pytest.approx(80.0)
    assert stats.best_mastery is MasteryLevel.PROFICIENT


def test_all_zero_attempts_still_report_best_score():
    stats = build_quiz_stats("q1", [make_attempt(0, minutes=5), make_attempt(0)])

    assert stats.best_score == 0.0
    assert stats.best_mastery is MasteryLevel.NOVICE


def test_aggregator_propagates_store_failure():
    store = MagicMock()
    store.attempts_by_quiz.side_effect = db.StorageError("disk I/O error")

    with pytest.raises(db.StorageError):
        QuizStatsAggregator(store).get_quiz_stats("learner", "c1", "q1")


def test_retake_scenario_against_database(temp_db):
    db.save_attempt(make_attempt(8, minutes=0))
    db.save_attempt(make_attempt(9, minutes=15))

    stats = QuizStatsAggregator().get_quiz_stats("learner", "c1", "q1")

    assert stats.best_score == pytest.approx(90.0)
    assert stats.latest_score == pytest.approx(90.0)
    assert stats.attempt_count == 2
    assert stats.best_mastery is MasteryLevel.EXPERT
    assert [a.percentage for a in stats.history] == pytest.approx([90.0, 80.0])
