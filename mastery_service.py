"""Entry points for quiz mastery statistics and the review queue.

Every public method takes plain identifiers and datetimes and returns the
models from :mod:`schemas`. Input is validated here, before storage is
touched; storage failures surface as :class:`db.StorageError`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import db
from engines.base import ConceptStrengthAnalyzer
from engines.course_summary import CourseSummaryAggregator
from engines.dashboard import RECENT_ATTEMPTS_LIMIT, DashboardAggregator
from engines.quiz_stats import QuizStatsAggregator
from engines.spaced_repetition import ReviewQueueScheduler
from env_validation import get_env_bool, get_env_float, get_env_int
from schemas import (
    CourseQuizSummary,
    DashboardQuizStats,
    QuizAttempt,
    QuizResponse,
    QuizResponseInput,
    QuizStats,
    ReviewQueueItem,
)

logger = logging.getLogger(__name__)

_QUIZ_TYPES = {"subchapter", "chapter"}


class InvalidInputError(ValueError):
    """Raised when a caller passes arguments that can never be satisfied."""


def _require(**identifiers: str) -> None:
    for name, value in identifiers.items():
        if not isinstance(value, str) or not value.strip():
            raise InvalidInputError(f"{name} required")


def _check_range(from_date: Optional[datetime], to_date: Optional[datetime]) -> None:
    if from_date is None or to_date is None:
        return
    start = from_date if from_date.tzinfo else from_date.replace(tzinfo=timezone.utc)
    end = to_date if to_date.tzinfo else to_date.replace(tzinfo=timezone.utc)
    if start > end:
        raise InvalidInputError("from_date must not be after to_date")


def _check_limit(limit: int) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise InvalidInputError("limit must be a non-negative integer")


class QuizMasteryService:
    def __init__(
        self,
        store=None,
        concepts: Optional[ConceptStrengthAnalyzer] = None,
        review_base_interval: Optional[timedelta] = None,
        review_minimum_interval: Optional[timedelta] = None,
        recent_limit: Optional[int] = None,
        review_on_submit: Optional[bool] = None,
    ):
        self.store = store or db
        if review_base_interval is None:
            review_base_interval = timedelta(hours=get_env_float("REVIEW_BASE_INTERVAL_HOURS", 24.0))
        if review_minimum_interval is None:
            review_minimum_interval = timedelta(hours=get_env_float("REVIEW_MIN_INTERVAL_HOURS", 1.0))
        if recent_limit is None:
            recent_limit = get_env_int("DASHBOARD_RECENT_LIMIT", RECENT_ATTEMPTS_LIMIT)
        if review_on_submit is None:
            review_on_submit = get_env_bool("REVIEW_ON_SUBMIT", True)

        self.review_queue = ReviewQueueScheduler(
            self.store,
            base_interval=review_base_interval,
            minimum_interval=review_minimum_interval,
        )
        self.quiz_stats = QuizStatsAggregator(self.store)
        self.course_summary = CourseSummaryAggregator(
            self.store, self.quiz_stats, concepts, review_queue=self.review_queue
        )
        self.dashboard = DashboardAggregator(self.store, self.course_summary, recent_limit)
        self.review_on_submit = review_on_submit

    # -------------- statistics --------------
    def get_quiz_stats(self, user_id: str, course_id: str, quiz_id: str) -> QuizStats:
        _require(user_id=user_id, course_id=course_id, quiz_id=quiz_id)
        return self.quiz_stats.get_quiz_stats(user_id, course_id, quiz_id)

    def get_course_summary(
        self,
        user_id: str,
        course_id: str,
        now: Optional[datetime] = None,
    ) -> CourseQuizSummary:
        _require(user_id=user_id, course_id=course_id)
        return self.course_summary.get_course_summary(user_id, course_id, now=now)

    def get_dashboard_stats(
        self,
        user_id: str,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> DashboardQuizStats:
        _require(user_id=user_id)
        _check_range(from_date, to_date)
        return self.dashboard.get_dashboard_stats(user_id, from_date, to_date, now=now)

    # -------------- review queue --------------
    def record_miss(
        self,
        user_id: str,
        course_id: str,
        quiz_id: str,
        question_id: str,
        concept: str = "",
        now: Optional[datetime] = None,
    ) -> ReviewQueueItem:
        _require(user_id=user_id, course_id=course_id, quiz_id=quiz_id, question_id=question_id)
        return self.review_queue.record_miss(
            user_id, course_id, quiz_id, question_id, concept=concept or "", now=now
        )

    def record_correct(self, user_id: str, course_id: str, question_id: str) -> bool:
        _require(user_id=user_id, course_id=course_id, question_id=question_id)
        return self.review_queue.record_correct(user_id, course_id, question_id)

    def due_items(
        self,
        user_id: str,
        course_id: str,
        limit: int,
        now: Optional[datetime] = None,
    ) -> List[ReviewQueueItem]:
        _require(user_id=user_id, course_id=course_id)
        _check_limit(limit)
        return self.review_queue.due_items(user_id, course_id, limit, now=now)

    # -------------- attempts --------------
    def submit_attempt(
        self,
        user_id: str,
        course_id: str,
        quiz_type: str,
        quiz_id: str,
        score: int,
        max_score: int,
        total_questions: int,
        correct_count: int,
        responses: Sequence[QuizResponseInput] = (),
        completed_at: Optional[datetime] = None,
    ) -> QuizAttempt:
        """Record a finished quiz and route its answers through the review queue.

        Wrong answers are queued (or decayed), correct answers clear any queued
        entry for the same question. The attempt, its responses and the queue
        changes commit together or not at all.
        """
        _require(user_id=user_id, course_id=course_id, quiz_id=quiz_id)
        if quiz_type not in _QUIZ_TYPES:
            raise InvalidInputError(f"quiz_type must be one of {sorted(_QUIZ_TYPES)}")
        if max_score < 0:
            raise InvalidInputError("max_score must not be negative")
        if score < 0 or score > max_score:
            raise InvalidInputError("score must be within [0, max_score]")
        if total_questions < 0 or not 0 <= correct_count <= total_questions:
            raise InvalidInputError("correct_count must be within [0, total_questions]")
        for response in responses:
            _require(question_id=response.question_id)

        attempt = QuizAttempt.create(
            user_id,
            course_id,
            quiz_type,
            quiz_id,
            score,
            max_score,
            total_questions,
            correct_count,
            completed_at=completed_at,
        )
        review_updates = []
        if self.review_on_submit:
            for response in responses:
                if response.is_correct:
                    review_updates.append((response.question_id, None))
                else:
                    miss = self.review_queue.miss_item(
                        user_id,
                        course_id,
                        quiz_id,
                        response.question_id,
                        concept=response.concept,
                        now=attempt.completed_at,
                    )
                    review_updates.append((response.question_id, miss))

        stored, _ = self.store.save_attempt_with_responses(
            attempt,
            [
                QuizResponse(
                    attempt_id="",
                    **response.model_dump(exclude={"concept"}),
                )
                for response in responses
            ],
            review_updates=review_updates,
            on_conflict=self.review_queue.decay,
        )
        logger.info(
            "Stored attempt %s user=%s course=%s quiz=%s percentage=%.1f",
            stored.id,
            user_id,
            course_id,
            quiz_id,
            stored.percentage,
        )
        logger.debug("Attempt %s applied %s review queue updates", stored.id, len(review_updates))
        return stored

    def get_attempt_responses(self, attempt_id: str) -> List[QuizResponse]:
        _require(attempt_id=attempt_id)
        return self.store.responses_by_attempt(attempt_id)

    def delete_attempt(self, attempt_id: str) -> bool:
        _require(attempt_id=attempt_id)
        return self.store.delete_attempt(attempt_id)
