"""Cross-course dashboard rollup."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import db
from engines.course_summary import CourseSummaryAggregator
from engines.mastery import classify
from schemas import DashboardQuizStats

logger = logging.getLogger(__name__)

RECENT_ATTEMPTS_LIMIT = 10


class DashboardAggregator:
    """Aggregate course summaries for every course a learner has attempted.

    Unlike :class:`CourseSummaryAggregator`, this is best effort: a course whose
    summary cannot be built is logged and left out of the rollup.
    """

    def __init__(
        self,
        store=None,
        course_summary: Optional[CourseSummaryAggregator] = None,
        recent_limit: int = RECENT_ATTEMPTS_LIMIT,
    ):
        self.store = store or db
        self.course_summary = course_summary or CourseSummaryAggregator(self.store)
        # The recent feed never holds more than RECENT_ATTEMPTS_LIMIT attempts.
        self.recent_limit = max(0, min(int(recent_limit), RECENT_ATTEMPTS_LIMIT))

    def get_dashboard_stats(
        self,
        user_id: str,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> DashboardQuizStats:
        if now is None:
            now = datetime.now(timezone.utc)

        stats = DashboardQuizStats()
        weighted_total = 0.0
        for course_id in self.store.distinct_courses(user_id, from_date, to_date):
            try:
                summary = self.course_summary.get_course_summary(user_id, course_id, now=now)
            except Exception:
                logger.exception(
                    "Skipping course %s on dashboard for user %s", course_id, user_id
                )
                continue

            stats.course_summaries.append(summary)
            stats.total_quizzes_taken += summary.completed_quizzes
            weighted_total += summary.average_score * summary.completed_quizzes
            stats.total_weak_concepts.extend(summary.weak_concepts)
            stats.total_strong_concepts.extend(summary.strong_concepts)

        if stats.total_quizzes_taken > 0:
            stats.overall_average_score = weighted_total / stats.total_quizzes_taken
        stats.overall_mastery = classify(stats.overall_average_score)

        stats.recent_attempts = self.store.recent_attempts(
            user_id, self.recent_limit, from_date, to_date
        )
        stats.score_history = self.store.score_history(user_id, from_date, to_date)
        return stats
