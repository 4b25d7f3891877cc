"""
Test suite for the Attempt Tracker

This module tests the per-question attempt state machine to ensure:
- The first attempt is always allowed and creates the progress row
- With the default of one recorded attempt, a second attempt is rejected
- Completion is permanent and marking it twice is harmless
- Rejected attempts don't change any state
- Concurrent submissions can't both get through

Run tests with: pytest backend/tests/test_attempt_tracker.py -v
"""

import os
import sys
import threading
import pytest
from unittest.mock import patch

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

# Add backend directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from db import create_db_engine, init_db
from services.attempt_tracker import AttemptTracker
from services.errors import AlreadyCompleted, RetakeExhausted, ValidationError


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def tracker(engine):
    return AttemptTracker(engine, max_retakes=1)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def racing_session_class():
    """
    Session subclass whose first INSERT commit behaves like a concurrent
    request that won the race: the row is written, then the caller sees
    the primary key violation.
    """
    state = {"raced": False}

    class RacingSession(Session):
        def commit(self):
            if not state["raced"] and self.new:
                state["raced"] = True
                super().commit()
                raise IntegrityError("INSERT INTO session_progress", {}, Exception("UNIQUE constraint failed"))
            return super().commit()

    return RacingSession


# ============================================================================
# TEST CASES - record_attempt / can_retake
# ============================================================================

class TestRecordAttempt:

    def test_first_attempt_succeeds(self, tracker):
        """A fresh question accepts its first attempt and starts at 1."""
        assert tracker.get_progress("s-1", "q-1") is None
        assert tracker.can_retake("s-1", "q-1") is True

        progress = tracker.record_attempt("s-1", "q-1")

        assert progress.attempts_used == 1
        assert progress.is_completed is False
        assert progress.last_attempt_at is not None

    def test_second_attempt_is_rejected_with_default_limit(self, tracker):
        tracker.record_attempt("s-1", "q-1")

        assert tracker.can_retake("s-1", "q-1") is False
        with pytest.raises(RetakeExhausted):
            tracker.record_attempt("s-1", "q-1")

        assert tracker.get_progress("s-1", "q-1").attempts_used == 1, \
            "A rejected attempt must not change the counter"

    def test_higher_limit_allows_retakes(self, tracker):
        tracker.record_attempt("s-1", "q-1", max_retakes=3)
        second = tracker.record_attempt("s-1", "q-1", max_retakes=3)
        third = tracker.record_attempt("s-1", "q-1", max_retakes=3)

        assert second.attempts_used == 2
        assert third.attempts_used == 3
        with pytest.raises(RetakeExhausted):
            tracker.record_attempt("s-1", "q-1", max_retakes=3)

    def test_questions_are_tracked_independently(self, tracker):
        tracker.record_attempt("s-1", "q-1")

        assert tracker.can_retake("s-1", "q-2") is True
        assert tracker.can_retake("s-2", "q-1") is True
        assert tracker.record_attempt("s-1", "q-2").attempts_used == 1

    def test_attempt_after_completion_is_rejected(self, tracker):
        tracker.record_attempt("s-1", "q-1", max_retakes=5)
        tracker.mark_completed("s-1", "q-1")

        assert tracker.can_retake("s-1", "q-1", max_retakes=5) is False
        with pytest.raises(AlreadyCompleted):
            tracker.record_attempt("s-1", "q-1", max_retakes=5)

    def test_blank_identifiers_are_rejected(self, tracker):
        with pytest.raises(ValidationError):
            tracker.record_attempt("", "q-1")
        with pytest.raises(ValidationError):
            tracker.record_attempt("s-1", "   ")

    def test_lost_insert_race_is_rejected_when_limit_reached(self, tracker):
        """
        Another request creates the row between our UPDATE and INSERT. With
        one allowed attempt, the loser is rejected and the counter stays at 1.
        """
        with patch("services.attempt_tracker.Session", racing_session_class()):
            with pytest.raises(RetakeExhausted):
                tracker.record_attempt("s-race", "q-1")

        assert tracker.get_progress("s-race", "q-1").attempts_used == 1

    def test_concurrent_first_attempts_only_one_wins(self, tmp_path):
        """
        Eight threads start recording the same fresh question at once against
        a real file database: exactly one attempt is recorded.
        """
        engine = create_db_engine(f"sqlite:///{tmp_path / 'race.db'}")
        init_db(engine)
        racing_tracker = AttemptTracker(engine, max_retakes=1)

        workers = 8
        barrier = threading.Barrier(workers)
        outcomes = []
        lock = threading.Lock()

        def submit():
            barrier.wait()
            try:
                racing_tracker.record_attempt("s-race", "q-1")
                outcome = "recorded"
            except RetakeExhausted:
                outcome = "rejected"
            except Exception as e:
                outcome = f"error: {e!r}"
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=submit) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        try:
            assert sorted(outcomes) == ["recorded"] + ["rejected"] * (workers - 1), outcomes
            assert racing_tracker.get_progress("s-race", "q-1").attempts_used == 1
        finally:
            engine.dispose()

    def test_lost_insert_race_retries_as_update(self, tracker):
        """With retakes left, the loser's attempt lands on the winner's row."""
        with patch("services.attempt_tracker.Session", racing_session_class()):
            progress = tracker.record_attempt("s-race", "q-1", max_retakes=2)

        assert progress.attempts_used == 2
        assert tracker.get_progress("s-race", "q-1").attempts_used == 2


# ============================================================================
# TEST CASES - mark_completed
# ============================================================================

class TestMarkCompleted:

    def test_mark_completed_twice_is_idempotent(self, tracker):
        tracker.record_attempt("s-1", "q-1")

        first = tracker.mark_completed("s-1", "q-1")
        second = tracker.mark_completed("s-1", "q-1")

        assert first.is_completed is True
        assert second.is_completed is True
        assert tracker.get_progress("s-1", "q-1").attempts_used == 1

    def test_mark_completed_without_attempt_is_noop(self, tracker):
        assert tracker.mark_completed("s-1", "never-started") is None
        assert tracker.get_progress("s-1", "never-started") is None

    def test_session_progress_lists_every_question(self, tracker):
        tracker.record_attempt("s-1", "q-1")
        tracker.record_attempt("s-1", "q-2")
        tracker.mark_completed("s-1", "q-1")
        tracker.record_attempt("s-2", "q-1")

        rows = tracker.get_session_progress("s-1")

        assert {row.question_id for row in rows} == {"q-1", "q-2"}
        completed = {row.question_id: row.is_completed for row in rows}
        assert completed == {"q-1": True, "q-2": False}
