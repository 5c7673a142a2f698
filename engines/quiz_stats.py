"""Per-quiz statistics derived from a learner's attempt history."""

from __future__ import annotations

from typing import Sequence

import db
from schemas import QuizAttempt, QuizStats


def build_quiz_stats(quiz_id: str, history: Sequence[QuizAttempt]) -> QuizStats:
    """Summarise ``history`` (newest first) for ``quiz_id``.

    The best attempt is the first one encountered with the strictly highest
    percentage, so when several attempts tie the most recent one wins and its
    recorded mastery level is reported.
    """

    stats = QuizStats(quiz_id=quiz_id, attempt_count=len(history), history=list(history))
    if not history:
        return stats

    stats.latest_score = history[0].percentage

    best = None
    for attempt in history:
        if best is None or attempt.percentage > best.percentage:
            best = attempt
    stats.best_score = best.percentage
    stats.best_mastery = best.mastery_level
    return stats


class QuizStatsAggregator:
    def __init__(self, store=None):
        self.store = store or db

    def get_quiz_stats(self, user_id: str, course_id: str, quiz_id: str) -> QuizStats:
        """Load the attempt history for one quiz and summarise it.

        Storage failures propagate; a quiz with no attempts yields empty stats.
        """

        history = self.store.attempts_by_quiz(user_id, course_id, quiz_id)
        return build_quiz_stats(quiz_id, history)
