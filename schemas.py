"""Pydantic schemas for quiz attempts, mastery rollups and the review queue."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Literal

from pydantic import BaseModel, Field

__all__ = [
    "MasteryLevel",
    "ConfidenceLevel",
    "QuizAttempt",
    "QuizResponse",
    "QuizStats",
    "CourseQuizSummary",
    "ScoreDataPoint",
    "DashboardQuizStats",
    "ReviewQueueItem",
    "QuizResponseInput",
    "SubmitQuizAttemptRequest",
    "ReviewMissRequest",
    "ReviewCorrectRequest",
    "compute_percentage",
]

ConfidenceLevel = Literal["low", "medium", "high"]


class MasteryLevel(str, Enum):
    """Ordered mastery tiers, lowest first."""

    NOVICE = "novice"
    DEVELOPING = "developing"
    PROFICIENT = "proficient"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return _MASTERY_ORDER.index(self)


_MASTERY_ORDER = (
    MasteryLevel.NOVICE,
    MasteryLevel.DEVELOPING,
    MasteryLevel.PROFICIENT,
    MasteryLevel.EXPERT,
)


def compute_percentage(score: float, max_score: float) -> float:
    """Return ``100 * score / max_score`` clamped to [0, 100]; 0 when ``max_score`` is 0."""

    if max_score <= 0:
        return 0.0
    return max(0.0, min(100.0, float(score) / float(max_score) * 100.0))


class QuizAttempt(BaseModel):
    """One completed run through a quiz. Immutable once stored."""

    id: str | None = None
    user_id: str
    course_id: str
    quiz_type: str = Field(description="Either 'subchapter' or 'chapter'.")
    quiz_id: str
    score: int
    max_score: int
    total_questions: int
    correct_count: int
    percentage: float = Field(ge=0.0, le=100.0)
    mastery_level: MasteryLevel
    completed_at: datetime

    @classmethod
    def create(
        cls,
        user_id: str,
        course_id: str,
        quiz_type: str,
        quiz_id: str,
        score: int,
        max_score: int,
        total_questions: int,
        correct_count: int,
        *,
        completed_at: datetime | None = None,
    ) -> "QuizAttempt":
        """Build an attempt, deriving percentage and mastery from the raw score."""

        from engines.mastery import classify

        percentage = compute_percentage(score, max_score)
        return cls(
            user_id=user_id,
            course_id=course_id,
            quiz_type=quiz_type,
            quiz_id=quiz_id,
            score=score,
            max_score=max_score,
            total_questions=total_questions,
            correct_count=correct_count,
            percentage=percentage,
            mastery_level=classify(percentage),
            completed_at=completed_at or datetime.now(timezone.utc),
        )


class QuizResponse(BaseModel):
    """Answer to a single question, owned by one attempt."""

    id: str | None = None
    attempt_id: str
    question_id: str
    user_answer: Any = Field(
        default=None,
        description="Opaque answer payload; stored as JSON.",
    )
    is_correct: bool
    points_earned: int = 0
    points_possible: int = 1
    confidence: ConfidenceLevel | None = None
    time_taken_seconds: int | None = Field(default=None, ge=0)


class QuizStats(BaseModel):
    quiz_id: str
    best_score: float | None = None
    latest_score: float | None = None
    attempt_count: int = 0
    best_mastery: MasteryLevel | None = None
    history: List[QuizAttempt] = Field(default_factory=list)


class CourseQuizSummary(BaseModel):
    course_id: str
    course_title: str | None = None
    total_quizzes: int = 0
    completed_quizzes: int = 0
    average_score: float = 0.0
    overall_mastery: MasteryLevel = MasteryLevel.NOVICE
    subchapter_stats: List[QuizStats] = Field(default_factory=list)
    chapter_stats: List[QuizStats] = Field(default_factory=list)
    weak_concepts: List[str] = Field(default_factory=list)
    strong_concepts: List[str] = Field(default_factory=list)
    review_queue_size: int = Field(default=0, ge=0)


class ScoreDataPoint(BaseModel):
    """Mean percentage for one course on one calendar day."""

    date: str
    score: float
    course_id: str
    course_name: str | None = None


class DashboardQuizStats(BaseModel):
    total_quizzes_taken: int = 0
    overall_average_score: float = 0.0
    overall_mastery: MasteryLevel = MasteryLevel.NOVICE
    course_summaries: List[CourseQuizSummary] = Field(default_factory=list)
    recent_attempts: List[QuizAttempt] = Field(default_factory=list)
    total_weak_concepts: List[str] = Field(default_factory=list)
    total_strong_concepts: List[str] = Field(default_factory=list)
    score_history: List[ScoreDataPoint] = Field(default_factory=list)


class ReviewQueueItem(BaseModel):
    """A previously missed question waiting to resurface."""

    id: str | None = None
    user_id: str
    course_id: str
    quiz_id: str
    question_id: str
    concept: str = ""
    wrong_count: int = Field(default=1, ge=1)
    last_attempt: datetime
    next_review: datetime
    stability: float = Field(default=1.0, ge=0.0)


# -------------- request payloads --------------
class QuizResponseInput(BaseModel):
    question_id: str
    user_answer: Any = None
    is_correct: bool
    points_earned: int = 0
    points_possible: int = 1
    confidence: ConfidenceLevel | None = None
    time_taken_seconds: int | None = Field(default=None, ge=0)
    concept: str = Field(
        default="",
        description="Concept tag copied onto the review queue entry when the answer is wrong.",
    )


class SubmitQuizAttemptRequest(BaseModel):
    user_id: str
    course_id: str
    quiz_type: str
    quiz_id: str
    score: int
    max_score: int
    total_questions: int
    correct_count: int
    completed_at: datetime | None = None
    responses: List[QuizResponseInput] = Field(default_factory=list)


class ReviewMissRequest(BaseModel):
    user_id: str
    course_id: str
    quiz_id: str
    question_id: str
    concept: str = ""


class ReviewCorrectRequest(BaseModel):
    user_id: str
    course_id: str
    question_id: str
