"""Course-level rollup of quiz statistics."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import db
from engines.base import ConceptStrengthAnalyzer, NoConceptAnalyzer
from engines.mastery import classify
from engines.quiz_stats import QuizStatsAggregator
from engines.spaced_repetition import ReviewQueueScheduler
from schemas import CourseQuizSummary


class CourseSummaryAggregator:
    """Compose per-quiz stats into a :class:`CourseQuizSummary`.

    Only quizzes the learner has attempted are counted, so ``total_quizzes``
    reflects attempted quizzes rather than the course catalogue. Any failure
    while loading a quiz aborts the whole summary.
    """

    def __init__(
        self,
        store=None,
        quiz_stats: Optional[QuizStatsAggregator] = None,
        concepts: Optional[ConceptStrengthAnalyzer] = None,
        review_queue: Optional[ReviewQueueScheduler] = None,
    ):
        self.store = store or db
        self.quiz_stats = quiz_stats or QuizStatsAggregator(self.store)
        self.concepts = concepts or NoConceptAnalyzer()
        self.review_queue = review_queue or ReviewQueueScheduler(self.store)

    def get_course_summary(
        self,
        user_id: str,
        course_id: str,
        now: Optional[datetime] = None,
    ) -> CourseQuizSummary:
        if now is None:
            now = datetime.now(timezone.utc)

        summary = CourseQuizSummary(course_id=course_id)
        total_score = 0.0
        for quiz_id, quiz_type in self.store.distinct_quizzes(user_id, course_id):
            stats = self.quiz_stats.get_quiz_stats(user_id, course_id, quiz_id)
            if quiz_type == "subchapter":
                summary.subchapter_stats.append(stats)
            else:
                summary.chapter_stats.append(stats)

            if stats.best_score is not None:
                total_score += stats.best_score
                summary.completed_quizzes += 1

        summary.total_quizzes = len(summary.subchapter_stats) + len(summary.chapter_stats)
        if summary.completed_quizzes:
            summary.average_score = total_score / summary.completed_quizzes
        summary.overall_mastery = classify(summary.average_score)

        weak, strong = self.concepts.analyze(user_id, course_id)
        summary.weak_concepts = list(weak)
        summary.strong_concepts = list(strong)

        summary.review_queue_size = self.review_queue.queue_size(user_id, course_id, now=now)
        return summary
