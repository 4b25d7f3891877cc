# models.py
"""
Persistent record sets for the capture and scoring pipeline.

The SQLModel classes are the only place raw rows are mapped: services read
and write these typed objects and never touch column names directly.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


KEYWORD_CATEGORIES = ("technical", "soft_skills", "experience", "general")

UPLOAD_COMPLETED = "completed"
UPLOAD_FAILED = "failed"

TRANSCRIPTION_PROCESSING = "processing"
TRANSCRIPTION_COMPLETED = "completed"
TRANSCRIPTION_FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class InterviewSession(SQLModel, table=True):
    """
    One candidate's run through an owner's question list.

    Sessions are created by the recruiter side of the product; this service
    only needs them to find which rubric (owner) a session is scored against.
    """
    __tablename__ = "interview_sessions"

    id: str = Field(default_factory=new_id, primary_key=True)
    owner_id: str = Field(index=True)
    candidate_name: Optional[str] = None
    candidate_email: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class QuestionProgress(SQLModel, table=True):
    __tablename__ = "session_progress"

    session_id: str = Field(primary_key=True)
    question_id: str = Field(primary_key=True)
    attempts_used: int = Field(default=0, ge=0)
    is_completed: bool = Field(default=False)
    last_attempt_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class VideoResponse(SQLModel, table=True):
    __tablename__ = "video_responses"

    id: str = Field(default_factory=new_id, primary_key=True)
    session_id: str = Field(index=True)
    question_id: str = Field(index=True)
    file_name: str
    storage_key: str
    public_url: str
    size_bytes: int = Field(ge=0)
    mime_type: str
    upload_status: str = Field(default=UPLOAD_COMPLETED)
    # processing -> completed | failed; a failed run leaves no Transcript row
    transcription_status: str = Field(default=TRANSCRIPTION_PROCESSING)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class Transcript(SQLModel, table=True):
    __tablename__ = "video_transcripts"

    id: str = Field(default_factory=new_id, primary_key=True)
    video_response_id: str = Field(index=True, unique=True)
    session_id: str = Field(index=True)
    question_id: str
    text: str = ""
    confidence: float = Field(default=0.0, ge=0, le=1)
    word_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class KeywordDefinition(SQLModel, table=True):
    """
    One rubric entry for a template or position.

    `weight` is kept for the recruiter UI but scoring counts every keyword
    equally.
    """
    __tablename__ = "template_keywords"

    id: str = Field(default_factory=new_id, primary_key=True)
    owner_id: str = Field(index=True)
    keyword: str
    category: str = Field(default="general")
    weight: float = Field(default=1.0, ge=0)
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class SessionKeywordScore(SQLModel, table=True):
    """
    Snapshot of a session's keyword score. Rows are only ever inserted, so
    the table doubles as score history.
    """
    __tablename__ = "session_keyword_scores"

    id: str = Field(default_factory=new_id, primary_key=True)
    session_id: str = Field(index=True)
    owner_id: str
    overall_score: float = 0.0
    technical_score: float = 0.0
    soft_skills_score: float = 0.0
    experience_score: float = 0.0
    general_score: float = 0.0
    found_count: int = 0
    possible_count: int = 0

    # matched keyword lists per category, stored as JSON
    breakdown: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON)
    )
    calculated_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
