# app.py - quiz mastery & review queue HTTP adapter
# - Thin FastAPI layer over QuizMasteryService
# - InvalidInputError -> 400, StorageError -> 503

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException

import db
from mastery_service import InvalidInputError, QuizMasteryService
from schemas import (
    CourseQuizSummary,
    DashboardQuizStats,
    QuizAttempt,
    QuizResponse,
    QuizStats,
    ReviewCorrectRequest,
    ReviewMissRequest,
    ReviewQueueItem,
    SubmitQuizAttemptRequest,
)

logger = logging.getLogger(__name__)

SERVICE = QuizMasteryService()


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        # Validate environment variables first
        from env_validation import validate_environment
        validate_environment()

        db.init()
        logger.info(
            "Quiz mastery service ready | DB_PATH: %s | review interval: %s (min %s)",
            db.DB_PATH,
            SERVICE.review_queue.base_interval,
            SERVICE.review_queue.minimum_interval,
        )
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Quiz Mastery", version="1.0.0", lifespan=_lifespan)


def _call(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except db.StorageError as exc:
        logger.exception("Storage failure in %s", getattr(fn, "__name__", fn))
        raise HTTPException(status_code=503, detail="storage unavailable") from exc


@app.get("/quiz/stats", response_model=QuizStats)
def quiz_stats(user_id: str, course_id: str, quiz_id: str):
    return _call(SERVICE.get_quiz_stats, user_id, course_id, quiz_id)


@app.get("/quiz/course-summary", response_model=CourseQuizSummary)
def course_summary(user_id: str, course_id: str):
    return _call(SERVICE.get_course_summary, user_id, course_id)


@app.get("/quiz/dashboard", response_model=DashboardQuizStats)
def dashboard(user_id: str, from_date: Optional[datetime] = None, to_date: Optional[datetime] = None):
    return _call(SERVICE.get_dashboard_stats, user_id, from_date, to_date)


@app.post("/quiz/attempts", response_model=QuizAttempt)
def submit_attempt(body: SubmitQuizAttemptRequest):
    return _call(
        SERVICE.submit_attempt,
        body.user_id,
        body.course_id,
        body.quiz_type,
        body.quiz_id,
        body.score,
        body.max_score,
        body.total_questions,
        body.correct_count,
        responses=body.responses,
        completed_at=body.completed_at,
    )


@app.get("/quiz/attempts/{attempt_id}/responses", response_model=List[QuizResponse])
def attempt_responses(attempt_id: str):
    return _call(SERVICE.get_attempt_responses, attempt_id)


@app.post("/review/miss", response_model=ReviewQueueItem)
def review_miss(body: ReviewMissRequest):
    return _call(
        SERVICE.record_miss,
        body.user_id,
        body.course_id,
        body.quiz_id,
        body.question_id,
        concept=body.concept,
    )


@app.post("/review/correct")
def review_correct(body: ReviewCorrectRequest):
    removed = _call(SERVICE.record_correct, body.user_id, body.course_id, body.question_id)
    return {"removed": removed}


@app.get("/review/due", response_model=List[ReviewQueueItem])
def review_due(user_id: str, course_id: str, limit: int = 20):
    return _call(SERVICE.due_items, user_id, course_id, limit)
