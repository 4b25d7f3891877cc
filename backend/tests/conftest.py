"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest before running tests.
Every test runs against an in-memory SQLite database and fake collaborators,
so no storage bucket, OpenAI key or ffmpeg binary is needed.
"""

import os
import sys

# Add backend directory to path for imports FIRST
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OPENAI_API_KEY", "test-api-key-for-testing")

import pytest
from unittest.mock import MagicMock
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from services import (
    KeywordScoringEngine,
    RecognitionSegment,
    StoredObject,
    TempFileManager,
    create_session,
)


@pytest.fixture
def engine():
    """
    Fresh in-memory database per test. StaticPool keeps one connection so
    worker threads see the same tables.
    """
    import models  # noqa: F401

    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def temp_files(tmp_path):
    """Scratch manager rooted in pytest's tmp dir, no retry pauses."""
    manager = TempFileManager(tmp_path, retry_delay_seconds=0)
    manager.ensure_dirs()
    return manager


@pytest.fixture
def make_session(engine):
    """
    Factory fixture that stores an InterviewSession for an owner and
    returns its id.
    """
    def create(owner_id: str = "template-1", session_id: str = None) -> str:
        return create_session(engine, owner_id, session_id=session_id).id

    return create


@pytest.fixture
def scorer(engine):
    return KeywordScoringEngine(engine)


@pytest.fixture
def fake_storage():
    """Storage gateway double that accepts every upload."""
    storage = MagicMock()
    storage.put.side_effect = lambda key, data, content_type, metadata=None: StoredObject(
        key=key,
        url=f"https://cdn.example.com/{key}"
    )
    storage.check_connection.return_value = True
    return storage


@pytest.fixture
def fake_transcoder():
    """Transcoder double that writes a small fake WAV next to the video."""
    transcoder = MagicMock()

    def extract(input_path, output_path=None):
        from pathlib import Path
        target = Path(output_path) if output_path else Path(input_path).with_suffix(".wav")
        target.write_bytes(b"RIFF....WAVEfmt fake-pcm")
        return target

    transcoder.extract_audio.side_effect = extract
    return transcoder


@pytest.fixture
def fake_speech():
    """Speech backend double returning two segments."""
    speech = MagicMock()
    speech.recognize.return_value = [
        RecognitionSegment(transcript="I deployed the service with Docker.", confidence=0.9),
        RecognitionSegment(transcript="I value teamwork.", confidence=0.7),
    ]
    speech.check_connection.return_value = True
    return speech
