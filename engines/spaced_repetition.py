"""Review queue for previously missed quiz questions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import db
from schemas import ReviewQueueItem

logger = logging.getLogger(__name__)

INITIAL_STABILITY = 1.0
STABILITY_DECAY = 0.8


class ReviewQueueScheduler:
    """Upsert-with-decay scheduling of missed questions.

    Stability starts from ``INITIAL_STABILITY`` and every miss, the first one
    included, multiplies it by ``STABILITY_DECAY``: three misses leave
    1.0 * 0.8 ** 3. Lower stability means the question resurfaces sooner. A
    correct answer removes it from the queue.
    """

    def __init__(
        self,
        store=None,
        base_interval: timedelta = timedelta(hours=24),
        minimum_interval: timedelta = timedelta(hours=1),
    ):
        self.store = store or db
        self.base_interval = base_interval
        self.minimum_interval = minimum_interval

    def calculate_next_review(self, last_attempt: datetime, stability: float) -> datetime:
        """Scale the base interval by ``stability``, never below the minimum."""

        interval = max(self.minimum_interval, self.base_interval * max(0.0, stability))
        return last_attempt + interval

    def decay(self, existing: ReviewQueueItem, incoming: ReviewQueueItem) -> ReviewQueueItem:
        """Conflict handler for a repeated miss: count it and shrink stability."""

        stability = existing.stability * STABILITY_DECAY
        return existing.model_copy(
            update={
                "wrong_count": existing.wrong_count + 1,
                "last_attempt": incoming.last_attempt,
                "next_review": self.calculate_next_review(incoming.last_attempt, stability),
                "stability": stability,
            }
        )

    def miss_item(
        self,
        user_id: str,
        course_id: str,
        quiz_id: str,
        question_id: str,
        concept: str = "",
        now: Optional[datetime] = None,
    ) -> ReviewQueueItem:
        """Entry stored for a first miss on ``question_id``."""

        if now is None:
            now = datetime.now(timezone.utc)

        stability = INITIAL_STABILITY * STABILITY_DECAY
        return ReviewQueueItem(
            user_id=user_id,
            course_id=course_id,
            quiz_id=quiz_id,
            question_id=question_id,
            concept=concept,
            wrong_count=1,
            last_attempt=now,
            next_review=self.calculate_next_review(now, stability),
            stability=stability,
        )

    def record_miss(
        self,
        user_id: str,
        course_id: str,
        quiz_id: str,
        question_id: str,
        concept: str = "",
        now: Optional[datetime] = None,
    ) -> ReviewQueueItem:
        """Queue ``question_id`` or decay its existing entry in one atomic step."""

        item = self.miss_item(user_id, course_id, quiz_id, question_id, concept=concept, now=now)
        stored = self.store.upsert_review_item(item, self.decay)
        logger.debug(
            "Review miss user=%s course=%s question=%s wrong_count=%s stability=%.3f",
            user_id,
            course_id,
            question_id,
            stored.wrong_count,
            stored.stability,
        )
        return stored

    def record_correct(self, user_id: str, course_id: str, question_id: str) -> bool:
        """Drop the question from the queue. Returns whether an entry existed."""

        removed = self.store.delete_review_item(user_id, course_id, question_id)
        if removed:
            logger.debug(
                "Review cleared user=%s course=%s question=%s", user_id, course_id, question_id
            )
        return removed

    def due_items(
        self,
        user_id: str,
        course_id: str,
        limit: int,
        now: Optional[datetime] = None,
    ) -> List[ReviewQueueItem]:
        """Items with ``next_review <= now``, earliest due first."""

        if now is None:
            now = datetime.now(timezone.utc)
        return self.store.due_review_items(user_id, course_id, now, limit)

    def queue_size(self, user_id: str, course_id: str, now: Optional[datetime] = None) -> int:
        if now is None:
            now = datetime.now(timezone.utc)
        return self.store.count_due_review_items(user_id, course_id, now)
