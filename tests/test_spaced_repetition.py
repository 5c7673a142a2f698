import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

import db
from engines.spaced_repetition import INITIAL_STABILITY, STABILITY_DECAY, ReviewQueueScheduler

NOW = datetime(2026, 10, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler(temp_db):
    return ReviewQueueScheduler()


def test_first_miss_inserts_fresh_item(scheduler):
    item = scheduler.record_miss("learner", "c1", "q1", "x1", concept="loops", now=NOW)

    assert item.id
    assert item.wrong_count == 1
    assert item.stability == pytest.approx(INITIAL_STABILITY * STABILITY_DECAY)
    assert item.last_attempt == NOW
    assert item.next_review == NOW + timedelta(hours=24) * STABILITY_DECAY
    assert item.concept == "loops"

    stored = db.get_review_item("learner", "c1", "x1")
    assert stored == item


def test_repeated_misses_decay_stability(scheduler):
    for minutes in (0, 10, 20):
        item = scheduler.record_miss("learner", "c1", "q1", "x1", now=NOW + timedelta(minutes=minutes))

    assert item.wrong_count == 3
    assert item.stability == pytest.approx(0.512)
    assert item.last_attempt == NOW + timedelta(minutes=20)
    assert abs(item.next_review - (item.last_attempt + timedelta(hours=24 * 0.512))) < timedelta(milliseconds=1)
    assert item.next_review >= item.last_attempt

    stored = db.get_review_item("learner", "c1", "x1")
    assert stored.wrong_count == 3
    assert stored.stability == pytest.approx(1.0 * STABILITY_DECAY ** 3)


def test_stability_strictly_decreases(scheduler):
    previous = None
    for i in range(6):
        item = scheduler.record_miss("learner", "c1", "q1", "x1", now=NOW + timedelta(minutes=i))
        if previous is not None:
            assert item.stability < previous
        previous = item.stability


def test_next_review_respects_minimum_interval(temp_db):
    scheduler = ReviewQueueScheduler(minimum_interval=timedelta(hours=6))
    for i in range(10):
        item = scheduler.record_miss("learner", "c1", "q1", "x1", now=NOW)

    assert item.stability < 0.25
    assert item.next_review == NOW + timedelta(hours=6)


def test_unique_per_user_course_question(scheduler):
    scheduler.record_miss("learner", "c1", "q1", "x1", now=NOW)
    scheduler.record_miss("learner", "c2", "q1", "x1", now=NOW)
    scheduler.record_miss("other", "c1", "q1", "x1", now=NOW)
    scheduler.record_miss("learner", "c1", "q9", "x1", now=NOW)

    assert db.get_review_item("learner", "c1", "x1").wrong_count == 2
    assert db.get_review_item("learner", "c2", "x1").wrong_count == 1
    assert db.get_review_item("other", "c1", "x1").wrong_count == 1


def test_correct_answer_removes_item(scheduler):
    scheduler.record_miss("learner", "c1", "q1", "x1", now=NOW)

    assert scheduler.record_correct("learner", "c1", "x1") is True
    assert db.get_review_item("learner", "c1", "x1") is None


def test_correct_answer_on_absent_item_is_noop(scheduler):
    scheduler.record_miss("learner", "c1", "q1", "x1", now=NOW)
    before = scheduler.queue_size("learner", "c1", now=NOW + timedelta(days=2))

    assert scheduler.record_correct("learner", "c1", "nope") is False
    assert scheduler.queue_size("learner", "c1", now=NOW + timedelta(days=2)) == before


def test_due_items_inclusive_boundary_and_order(scheduler):
    scheduler.record_miss("learner", "c1", "q1", "late", now=NOW)
    scheduler.record_miss("learner", "c1", "q1", "early", now=NOW - timedelta(hours=5))
    scheduler.record_miss("learner", "c1", "q1", "future", now=NOW + timedelta(hours=1))

    boundary = NOW + timedelta(hours=24) * STABILITY_DECAY
    due = scheduler.due_items("learner", "c1", limit=10, now=boundary)

    assert [item.question_id for item in due] == ["early", "late"]
    assert all(item.next_review <= boundary for item in due)
    assert due[1].next_review == boundary


def test_due_items_limit_and_read_only(scheduler):
    for i in range(5):
        scheduler.record_miss("learner", "c1", "q1", f"x{i}", now=NOW + timedelta(minutes=i))

    later = NOW + timedelta(days=2)
    first = scheduler.due_items("learner", "c1", limit=3, now=later)
    second = scheduler.due_items("learner", "c1", limit=3, now=later)

    assert [item.question_id for item in first] == ["x0", "x1", "x2"]
    assert first == second
    assert scheduler.due_items("learner", "c1", limit=0, now=later) == []


def test_three_misses_then_correct_scenario(scheduler):
    for i in range(3):
        scheduler.record_miss("learner", "c1", "q1", "x1", now=NOW + timedelta(minutes=i))

    item = db.get_review_item("learner", "c1", "x1")
    assert item.stability == pytest.approx(0.512)
    assert item.wrong_count == 3

    scheduler.record_correct("learner", "c1", "x1")

    due = scheduler.due_items("learner", "c1", limit=10, now=NOW + timedelta(days=30))
    assert "x1" not in [i.question_id for i in due]


def test_concurrent_misses_do_not_lose_increments(scheduler):
    threads_count = 6
    misses_each = 5
    errors = []

    def worker():
        try:
            for _ in range(misses_each):
                scheduler.record_miss("learner", "c1", "q1", "x1", now=NOW)
        except Exception as exc:  # surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(threads_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    total = threads_count * misses_each
    item = db.get_review_item("learner", "c1", "x1")
    assert item.wrong_count == total
    assert item.stability == pytest.approx(STABILITY_DECAY ** total)


def test_storage_errors_propagate():
    store = MagicMock()
    store.upsert_review_item.side_effect = db.StorageError("disk full")
    store.delete_review_item.side_effect = db.StorageError("disk full")
    scheduler = ReviewQueueScheduler(store)

    with pytest.raises(db.StorageError):
        scheduler.record_miss("learner", "c1", "q1", "x1", now=NOW)
    with pytest.raises(db.StorageError):
        scheduler.record_correct("learner", "c1", "x1")
