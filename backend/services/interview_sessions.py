# backend/services/interview_sessions.py
"""
Interview sessions are created by the recruiter side of the product. These
helpers exist for seeding and tests; the pipeline itself only reads sessions.
"""

import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from models import InterviewSession
from .attempt_tracker import require_id

logger = logging.getLogger(__name__)


def create_session(
    engine: Engine,
    owner_id: str,
    candidate_name: Optional[str] = None,
    candidate_email: Optional[str] = None,
    session_id: Optional[str] = None
) -> InterviewSession:
    """
    Store a new interview session scored against owner_id's keyword rubric.

    Raises:
        ValidationError: Blank owner_id
    """
    owner_id = require_id(owner_id, "owner_id")

    interview = InterviewSession(
        owner_id=owner_id,
        candidate_name=candidate_name,
        candidate_email=candidate_email,
    )
    if session_id:
        interview.id = require_id(session_id, "session_id")

    with Session(engine, expire_on_commit=False) as db:
        db.add(interview)
        db.commit()

    logger.info(f"Interview session created: {interview.id} (owner={owner_id})")
    return interview


def get_session(engine: Engine, session_id: str) -> Optional[InterviewSession]:
    session_id = require_id(session_id, "session_id")
    with Session(engine, expire_on_commit=False) as db:
        return db.get(InterviewSession, session_id)
