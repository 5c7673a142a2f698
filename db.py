import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from queue import Empty
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple
from uuid import uuid4

from db_pool import SQLiteConnectionPool
from env_validation import get_env_float, get_env_int
from schemas import QuizAttempt, QuizResponse, ReviewQueueItem, ScoreDataPoint

DB_PATH = os.getenv("DB_PATH", "data.db")
DB_MAX_CONNECTIONS = get_env_int("DB_MAX_CONNECTIONS", 10)
DB_TIMEOUT_SECONDS = get_env_float("DB_TIMEOUT_SECONDS", 5.0)

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=DB_MAX_CONNECTIONS, timeout=DB_TIMEOUT_SECONDS)


class StorageError(RuntimeError):
    """Raised when the underlying SQLite store fails."""


@contextmanager
def _conn() -> Iterator[sqlite3.Connection]:
    """Acquire a pooled connection, surfacing driver errors as :class:`StorageError`."""
    try:
        with _pool.get_connection() as con:
            yield con
    except (sqlite3.Error, Empty) as exc:
        raise StorageError(str(exc) or exc.__class__.__name__) from exc


def _exec(sql: str, params: Iterable = ()) -> sqlite3.Cursor:
    with _conn() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _conn() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


def init():
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            PRAGMA foreign_keys = ON;
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS quiz_attempts (
              id               TEXT PRIMARY KEY,
              user_id          TEXT NOT NULL,
              course_id        TEXT NOT NULL,
              quiz_type        TEXT NOT NULL,
              quiz_id          TEXT NOT NULL,
              score            INTEGER NOT NULL,
              max_score        INTEGER NOT NULL,
              total_questions  INTEGER NOT NULL,
              correct_count    INTEGER NOT NULL,
              percentage       REAL NOT NULL,
              mastery_level    TEXT NOT NULL,
              completed_at     TEXT NOT NULL,
              completed_on     TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_quiz_attempts_user_course ON quiz_attempts(user_id, course_id);
            CREATE INDEX IF NOT EXISTS idx_quiz_attempts_quiz ON quiz_attempts(user_id, course_id, quiz_id, completed_at DESC);
            CREATE INDEX IF NOT EXISTS idx_quiz_attempts_completed ON quiz_attempts(user_id, completed_at DESC);

            CREATE TABLE IF NOT EXISTS quiz_responses (
              id                  TEXT PRIMARY KEY,
              attempt_id          TEXT NOT NULL,
              question_id         TEXT NOT NULL,
              user_answer         TEXT,
              is_correct          INTEGER NOT NULL,
              points_earned       INTEGER NOT NULL DEFAULT 0,
              points_possible     INTEGER NOT NULL DEFAULT 1,
              confidence          TEXT,
              time_taken_seconds  INTEGER,
              FOREIGN KEY(attempt_id) REFERENCES quiz_attempts(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_quiz_responses_attempt ON quiz_responses(attempt_id);

            CREATE TABLE IF NOT EXISTS review_queue (
              id            TEXT PRIMARY KEY,
              user_id       TEXT NOT NULL,
              course_id     TEXT NOT NULL,
              quiz_id       TEXT NOT NULL,
              question_id   TEXT NOT NULL,
              concept       TEXT NOT NULL DEFAULT '',
              wrong_count   INTEGER NOT NULL DEFAULT 1,
              last_attempt  TEXT NOT NULL,
              next_review   TEXT NOT NULL,
              stability     REAL NOT NULL DEFAULT 1.0,
              UNIQUE(user_id, course_id, question_id)
            );

            CREATE INDEX IF NOT EXISTS idx_review_queue_due ON review_queue(user_id, course_id, next_review);
            """
        )
        con.commit()


# -------------- timestamp helpers --------------
def _coerce_to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _format_ts(dt: datetime) -> str:
    # Fixed-width UTC text so lexical order matches chronological order.
    return _coerce_to_utc(dt).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _date_filter(from_date: Optional[datetime], to_date: Optional[datetime]) -> Tuple[str, list]:
    clause = ""
    params: list = []
    if from_date is not None:
        clause += " AND completed_at >= ?"
        params.append(_format_ts(from_date))
    if to_date is not None:
        clause += " AND completed_at <= ?"
        params.append(_format_ts(to_date))
    return clause, params


# -------------- quiz attempts --------------
_ATTEMPT_COLUMNS = """
    id, user_id, course_id, quiz_type, quiz_id, score, max_score,
    total_questions, correct_count, percentage, mastery_level, completed_at
"""


def _row_to_attempt(row: sqlite3.Row) -> QuizAttempt:
    return QuizAttempt(
        id=row["id"],
        user_id=row["user_id"],
        course_id=row["course_id"],
        quiz_type=row["quiz_type"],
        quiz_id=row["quiz_id"],
        score=row["score"],
        max_score=row["max_score"],
        total_questions=row["total_questions"],
        correct_count=row["correct_count"],
        percentage=row["percentage"],
        mastery_level=row["mastery_level"],
        completed_at=_parse_ts(row["completed_at"]),
    )


def _insert_attempt(con: sqlite3.Connection, attempt: QuizAttempt) -> QuizAttempt:
    if not attempt.id:
        attempt = attempt.model_copy(update={"id": str(uuid4())})
    con.execute(
        f"""
        INSERT INTO quiz_attempts ({_ATTEMPT_COLUMNS}, completed_on)
        VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
        """,
        (
            attempt.id,
            attempt.user_id,
            attempt.course_id,
            attempt.quiz_type,
            attempt.quiz_id,
            attempt.score,
            attempt.max_score,
            attempt.total_questions,
            attempt.correct_count,
            attempt.percentage,
            attempt.mastery_level.value,
            _format_ts(attempt.completed_at),
            # Calendar day in the attempt's own timezone of record
            attempt.completed_at.date().isoformat(),
        ),
    )
    return attempt


def _insert_response(con: sqlite3.Connection, response: QuizResponse) -> QuizResponse:
    if not response.id:
        response = response.model_copy(update={"id": str(uuid4())})
    con.execute(
        """
        INSERT INTO quiz_responses (
            id, attempt_id, question_id, user_answer, is_correct,
            points_earned, points_possible, confidence, time_taken_seconds
        ) VALUES (?,?,?,?,?,?,?,?,?)
        """,
        (
            response.id,
            response.attempt_id,
            response.question_id,
            json.dumps(response.user_answer),
            1 if response.is_correct else 0,
            response.points_earned,
            response.points_possible,
            response.confidence,
            response.time_taken_seconds,
        ),
    )
    return response


def save_attempt(attempt: QuizAttempt) -> QuizAttempt:
    """Persist ``attempt``, assigning an id when it has none."""
    with _conn() as con:
        stored = _insert_attempt(con, attempt)
        con.commit()
    return stored


def save_response(response: QuizResponse) -> QuizResponse:
    with _conn() as con:
        stored = _insert_response(con, response)
        con.commit()
    return stored


def save_attempt_with_responses(
    attempt: QuizAttempt,
    responses: Sequence[QuizResponse],
    review_updates: Sequence[Tuple[str, Optional[ReviewQueueItem]]] = (),
    on_conflict: Optional[Callable[[ReviewQueueItem, ReviewQueueItem], ReviewQueueItem]] = None,
) -> Tuple[QuizAttempt, List[QuizResponse]]:
    """Store an attempt, its responses and their review queue effects in one transaction.

    ``attempt_id`` on each response is overwritten with the stored attempt id.
    ``review_updates`` holds ``(question_id, item)`` pairs applied in order: an
    item is upserted through ``on_conflict``, ``None`` clears the question from
    the attempt owner's queue. Any failure rolls back the attempt too.
    """
    with _conn() as con:
        con.execute("BEGIN IMMEDIATE")
        stored_attempt = _insert_attempt(con, attempt)
        stored_responses = [
            _insert_response(con, response.model_copy(update={"attempt_id": stored_attempt.id}))
            for response in responses
        ]
        for question_id, item in review_updates:
            if item is None:
                _delete_review_item(con, attempt.user_id, attempt.course_id, question_id)
            else:
                _upsert_review_item(con, item, on_conflict)
        con.commit()
    return stored_attempt, stored_responses


def get_attempt(attempt_id: str) -> Optional[QuizAttempt]:
    rows = _query(f"SELECT {_ATTEMPT_COLUMNS} FROM quiz_attempts WHERE id = ?", (attempt_id,))
    return _row_to_attempt(rows[0]) if rows else None


def delete_attempt(attempt_id: str) -> bool:
    """Delete an attempt; its responses go with it."""
    cur = _exec("DELETE FROM quiz_attempts WHERE id = ?", (attempt_id,))
    return cur.rowcount > 0


def attempts_by_quiz(user_id: str, course_id: str, quiz_id: str) -> List[QuizAttempt]:
    """Full attempt history for one quiz, newest first."""
    rows = _query(
        f"""
        SELECT {_ATTEMPT_COLUMNS}
        FROM quiz_attempts
        WHERE user_id = ? AND course_id = ? AND quiz_id = ?
        ORDER BY completed_at DESC, rowid DESC
        """,
        (user_id, course_id, quiz_id),
    )
    return [_row_to_attempt(row) for row in rows]


def distinct_quizzes(user_id: str, course_id: str) -> List[Tuple[str, str]]:
    """``(quiz_id, quiz_type)`` pairs attempted in a course, in first-attempt order."""
    rows = _query(
        """
        SELECT quiz_id, quiz_type
        FROM quiz_attempts
        WHERE user_id = ? AND course_id = ?
        GROUP BY quiz_id, quiz_type
        ORDER BY MIN(rowid)
        """,
        (user_id, course_id),
    )
    return [(row["quiz_id"], row["quiz_type"]) for row in rows]


def distinct_courses(
    user_id: str,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
) -> List[str]:
    clause, params = _date_filter(from_date, to_date)
    rows = _query(
        f"""
        SELECT course_id
        FROM quiz_attempts
        WHERE user_id = ?{clause}
        GROUP BY course_id
        ORDER BY MIN(rowid)
        """,
        [user_id, *params],
    )
    return [row["course_id"] for row in rows]


def recent_attempts(
    user_id: str,
    limit: int,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
) -> List[QuizAttempt]:
    clause, params = _date_filter(from_date, to_date)
    rows = _query(
        f"""
        SELECT {_ATTEMPT_COLUMNS}
        FROM quiz_attempts
        WHERE user_id = ?{clause}
        ORDER BY completed_at DESC, rowid DESC
        LIMIT ?
        """,
        [user_id, *params, int(limit)],
    )
    return [_row_to_attempt(row) for row in rows]


def score_history(
    user_id: str,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
) -> List[ScoreDataPoint]:
    """Mean percentage per course and calendar day, oldest day first."""
    clause, params = _date_filter(from_date, to_date)
    rows = _query(
        f"""
        SELECT course_id, completed_on AS date, AVG(percentage) AS avg_score
        FROM quiz_attempts
        WHERE user_id = ?{clause}
        GROUP BY course_id, completed_on
        ORDER BY completed_on ASC, course_id ASC
        """,
        [user_id, *params],
    )
    return [
        ScoreDataPoint(date=row["date"], score=float(row["avg_score"]), course_id=row["course_id"])
        for row in rows
    ]


# -------------- quiz responses --------------
def _row_to_response(row: sqlite3.Row) -> QuizResponse:
    user_answer: Any = row["user_answer"]
    if user_answer is not None:
        user_answer = json.loads(user_answer)
    return QuizResponse(
        id=row["id"],
        attempt_id=row["attempt_id"],
        question_id=row["question_id"],
        user_answer=user_answer,
        is_correct=bool(row["is_correct"]),
        points_earned=row["points_earned"],
        points_possible=row["points_possible"],
        confidence=row["confidence"],
        time_taken_seconds=row["time_taken_seconds"],
    )


def responses_by_attempt(attempt_id: str) -> List[QuizResponse]:
    rows = _query(
        """
        SELECT id, attempt_id, question_id, user_answer, is_correct,
               points_earned, points_possible, confidence, time_taken_seconds
        FROM quiz_responses
        WHERE attempt_id = ?
        ORDER BY rowid ASC
        """,
        (attempt_id,),
    )
    return [_row_to_response(row) for row in rows]


# -------------- review queue --------------
_REVIEW_COLUMNS = """
    id, user_id, course_id, quiz_id, question_id, concept,
    wrong_count, last_attempt, next_review, stability
"""


def _row_to_review_item(row: sqlite3.Row) -> ReviewQueueItem:
    return ReviewQueueItem(
        id=row["id"],
        user_id=row["user_id"],
        course_id=row["course_id"],
        quiz_id=row["quiz_id"],
        question_id=row["question_id"],
        concept=row["concept"],
        wrong_count=row["wrong_count"],
        last_attempt=_parse_ts(row["last_attempt"]),
        next_review=_parse_ts(row["next_review"]),
        stability=row["stability"],
    )


def get_review_item(user_id: str, course_id: str, question_id: str) -> Optional[ReviewQueueItem]:
    rows = _query(
        f"""
        SELECT {_REVIEW_COLUMNS}
        FROM review_queue
        WHERE user_id = ? AND course_id = ? AND question_id = ?
        """,
        (user_id, course_id, question_id),
    )
    return _row_to_review_item(rows[0]) if rows else None


def _upsert_review_item(
    con: sqlite3.Connection,
    item: ReviewQueueItem,
    on_conflict: Callable[[ReviewQueueItem, ReviewQueueItem], ReviewQueueItem],
) -> ReviewQueueItem:
    # Caller owns the transaction and must already hold the write lock.
    row = con.execute(
        f"""
        SELECT {_REVIEW_COLUMNS}
        FROM review_queue
        WHERE user_id = ? AND course_id = ? AND question_id = ?
        """,
        (item.user_id, item.course_id, item.question_id),
    ).fetchone()

    if row is None:
        stored = item if item.id else item.model_copy(update={"id": str(uuid4())})
        con.execute(
            f"INSERT INTO review_queue ({_REVIEW_COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?,?)",
            (
                stored.id,
                stored.user_id,
                stored.course_id,
                stored.quiz_id,
                stored.question_id,
                stored.concept,
                stored.wrong_count,
                _format_ts(stored.last_attempt),
                _format_ts(stored.next_review),
                stored.stability,
            ),
        )
        return stored

    existing = _row_to_review_item(row)
    stored = on_conflict(existing, item)
    con.execute(
        """
        UPDATE review_queue
        SET wrong_count = ?, last_attempt = ?, next_review = ?, stability = ?
        WHERE id = ?
        """,
        (
            stored.wrong_count,
            _format_ts(stored.last_attempt),
            _format_ts(stored.next_review),
            stored.stability,
            existing.id,
        ),
    )
    return stored


def _delete_review_item(con: sqlite3.Connection, user_id: str, course_id: str, question_id: str) -> bool:
    cur = con.execute(
        "DELETE FROM review_queue WHERE user_id = ? AND course_id = ? AND question_id = ?",
        (user_id, course_id, question_id),
    )
    return cur.rowcount > 0


def upsert_review_item(
    item: ReviewQueueItem,
    on_conflict: Callable[[ReviewQueueItem, ReviewQueueItem], ReviewQueueItem],
) -> ReviewQueueItem:
    """Insert ``item`` or replace the existing row with ``on_conflict(existing, item)``.

    Read and write happen inside one ``BEGIN IMMEDIATE`` transaction, so
    concurrent upserts on the same (user, course, question) key serialize.
    """
    with _conn() as con:
        con.execute("BEGIN IMMEDIATE")
        stored = _upsert_review_item(con, item, on_conflict)
        con.commit()
    return stored


def due_review_items(
    user_id: str,
    course_id: str,
    now: datetime,
    limit: int,
) -> List[ReviewQueueItem]:
    rows = _query(
        f"""
        SELECT {_REVIEW_COLUMNS}
        FROM review_queue
        WHERE user_id = ? AND course_id = ? AND next_review <= ?
        ORDER BY next_review ASC, rowid ASC
        LIMIT ?
        """,
        (user_id, course_id, _format_ts(now), int(limit)),
    )
    return [_row_to_review_item(row) for row in rows]


def count_due_review_items(user_id: str, course_id: str, now: datetime) -> int:
    rows = _query(
        """
        SELECT COUNT(*) AS n
        FROM review_queue
        WHERE user_id = ? AND course_id = ? AND next_review <= ?
        """,
        (user_id, course_id, _format_ts(now)),
    )
    return int(rows[0]["n"]) if rows else 0


def delete_review_item(user_id: str, course_id: str, question_id: str) -> bool:
    """Remove a queued question. Deleting an absent entry is a no-op."""
    with _conn() as con:
        removed = _delete_review_item(con, user_id, course_id, question_id)
        con.commit()
    return removed
