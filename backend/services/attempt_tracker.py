# backend/services/attempt_tracker.py
"""
Attempt Tracker

Per-question progress for an interview session:

    NotStarted (no row) -> InProgress (attempts_used >= 1) -> Completed

The client asks can_retake() before it starts recording, then calls
record_attempt() when recording starts and mark_completed() when the
answer is submitted. Completion is permanent.
"""

import logging
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from models import QuestionProgress, utcnow
from .errors import AlreadyCompleted, RetakeExhausted, ValidationError

logger = logging.getLogger(__name__)


def require_id(value: Optional[str], name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required")
    return str(value).strip()


class AttemptTracker:
    """
    Tracks attempts and completion for each (session, question).

    Args:
        engine: SQLAlchemy engine the progress rows live in
        max_retakes: Default number of recorded attempts a question accepts
    """

    def __init__(self, engine: Engine, max_retakes: int = 1):
        self.engine = engine
        self.max_retakes = max_retakes

    def get_progress(self, session_id: str, question_id: str) -> Optional[QuestionProgress]:
        session_id = require_id(session_id, "session_id")
        question_id = require_id(question_id, "question_id")

        with Session(self.engine, expire_on_commit=False) as db:
            return db.get(QuestionProgress, (session_id, question_id))

    def get_session_progress(self, session_id: str) -> List[QuestionProgress]:
        session_id = require_id(session_id, "session_id")

        with Session(self.engine, expire_on_commit=False) as db:
            return list(db.exec(
                select(QuestionProgress)
                .where(QuestionProgress.session_id == session_id)
                .order_by(QuestionProgress.created_at)
            ).all())

    def can_retake(
        self,
        session_id: str,
        question_id: str,
        max_retakes: Optional[int] = None
    ) -> bool:
        """
        True when the candidate may start recording this question.

        The first attempt is always allowed. After that, attempts_used must
        still be under max_retakes and the question must not be completed.
        """
        limit = self.max_retakes if max_retakes is None else max_retakes
        progress = self.get_progress(session_id, question_id)
        if progress is None:
            return True
        return progress.attempts_used < limit and not progress.is_completed

    def record_attempt(
        self,
        session_id: str,
        question_id: str,
        max_retakes: Optional[int] = None
    ) -> QuestionProgress:
        """
        Count one recording attempt.

        The increment is a single conditional UPDATE so concurrent submissions
        can't both pass the eligibility check. When no row exists yet, the row
        is inserted with one attempt; if another request inserted it first,
        the conditional update runs again against that row.

        Returns:
            The progress row after the increment

        Raises:
            AlreadyCompleted: The question was already submitted
            RetakeExhausted: No attempts left
        """
        session_id = require_id(session_id, "session_id")
        question_id = require_id(question_id, "question_id")
        limit = self.max_retakes if max_retakes is None else max_retakes

        for _ in range(2):
            now = utcnow()
            with Session(self.engine, expire_on_commit=False) as db:
                result = db.exec(
                    update(QuestionProgress)
                    .where(
                        QuestionProgress.session_id == session_id,
                        QuestionProgress.question_id == question_id,
                        QuestionProgress.is_completed == False,  # noqa: E712
                        QuestionProgress.attempts_used < limit,
                    )
                    .values(
                        attempts_used=QuestionProgress.attempts_used + 1,
                        last_attempt_at=now,
                    )
                )

                if result.rowcount == 1:
                    db.commit()
                    progress = db.get(QuestionProgress, (session_id, question_id))
                    db.refresh(progress)
                    logger.info(
                        f"Attempt {progress.attempts_used} recorded for "
                        f"session={session_id} question={question_id}"
                    )
                    return progress

                existing = db.get(QuestionProgress, (session_id, question_id))
                if existing is not None:
                    db.rollback()
                    if existing.is_completed:
                        raise AlreadyCompleted(
                            f"Question {question_id} is already completed for session {session_id}"
                        )
                    raise RetakeExhausted(
                        f"No retakes left for question {question_id} "
                        f"({existing.attempts_used}/{limit} attempts used)"
                    )

                progress = QuestionProgress(
                    session_id=session_id,
                    question_id=question_id,
                    attempts_used=1,
                    is_completed=False,
                    last_attempt_at=now,
                    created_at=now,
                )
                db.add(progress)
                try:
                    db.commit()
                except IntegrityError:
                    # Lost the insert race; retry as an update against the winner's row
                    db.rollback()
                    continue

                logger.info(f"First attempt recorded for session={session_id} question={question_id}")
                return progress

        raise RetakeExhausted(f"No retakes left for question {question_id}")

    def mark_completed(self, session_id: str, question_id: str) -> Optional[QuestionProgress]:
        """
        Mark the question as submitted. Safe to call more than once.

        Returns:
            The progress row, or None if the question was never attempted
        """
        session_id = require_id(session_id, "session_id")
        question_id = require_id(question_id, "question_id")

        with Session(self.engine, expire_on_commit=False) as db:
            db.exec(
                update(QuestionProgress)
                .where(
                    QuestionProgress.session_id == session_id,
                    QuestionProgress.question_id == question_id,
                )
                .values(is_completed=True, last_attempt_at=utcnow())
            )
            db.commit()

            progress = db.get(QuestionProgress, (session_id, question_id))
            if progress is None:
                logger.warning(
                    f"mark_completed ignored: no attempt recorded for "
                    f"session={session_id} question={question_id}"
                )
                return None

            db.refresh(progress)
            logger.info(f"Question {question_id} completed for session {session_id}")
            return progress
