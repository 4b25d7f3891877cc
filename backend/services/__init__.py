# backend/services/__init__.py
"""
Services Package for the Video Interview Backend

Capture:
    - attempt_tracker: per-question attempt / retake state machine
    - interview_sessions: create and look up sessions (seeding, tests)
    - video_ingestion: store recorded answers and queue transcription

Transcription:
    - transcription_pipeline: audio extraction, speech recognition, transcript storage
    - media_transcoder: ffmpeg audio extraction
    - speech_backend: OpenAI Whisper speech recognition

Scoring:
    - keyword_scoring: distinct keyword matching against a session's rubric

Infrastructure:
    - storage_gateway: S3-compatible object storage
    - temp_files: scratch directories, deletion with retry, periodic sweeping
    - errors: shared error taxonomy
"""

from .errors import (
    InterviewPipelineError,
    ValidationError,
    RetakeExhausted,
    AlreadyCompleted,
    StorageFailure,
    TranscriptionFailure,
    TranscodeError
)
from .temp_files import TempFileManager
from .storage_gateway import R2StorageGateway, StoredObject, build_video_key
from .speech_backend import WhisperSpeechBackend, RecognitionSegment
from .media_transcoder import FFmpegTranscoder
from .attempt_tracker import AttemptTracker
from .interview_sessions import create_session, get_session
from .keyword_scoring import (
    KeywordScoringEngine,
    KeywordScoreResult,
    ScoreUnavailable,
    calculate_keyword_score
)
from .transcription_pipeline import (
    TranscriptionPipeline,
    TranscriptionDispatcher,
    TranscriptionJob,
    aggregate_segments
)
from .video_ingestion import VideoIngestionService

__all__ = [
    # Errors
    "InterviewPipelineError",
    "ValidationError",
    "RetakeExhausted",
    "AlreadyCompleted",
    "StorageFailure",
    "TranscriptionFailure",
    "TranscodeError",
    # Infrastructure
    "TempFileManager",
    "R2StorageGateway",
    "StoredObject",
    "build_video_key",
    "WhisperSpeechBackend",
    "RecognitionSegment",
    "FFmpegTranscoder",
    # Capture
    "AttemptTracker",
    "create_session",
    "get_session",
    "VideoIngestionService",
    # Transcription
    "TranscriptionPipeline",
    "TranscriptionDispatcher",
    "TranscriptionJob",
    "aggregate_segments",
    # Scoring
    "KeywordScoringEngine",
    "KeywordScoreResult",
    "ScoreUnavailable",
    "calculate_keyword_score",
]
