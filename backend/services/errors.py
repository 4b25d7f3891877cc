# backend/services/errors.py
"""
Error taxonomy shared by the capture and scoring services.

Scoring being unavailable is not an error; see keyword_scoring.ScoreUnavailable.
"""


class InterviewPipelineError(Exception):
    """Base class for every error raised by the pipeline services."""


class ValidationError(InterviewPipelineError):
    """Bad or missing identifiers, oversized or non-video payloads."""


class RetakeExhausted(InterviewPipelineError):
    """The question has used all of its allowed attempts."""


class AlreadyCompleted(InterviewPipelineError):
    """The question was already submitted and can't be attempted again."""


class StorageFailure(InterviewPipelineError):
    """The storage gateway could not store or delete an object."""


class TranscriptionFailure(InterviewPipelineError):
    """Audio extraction or speech recognition failed."""


class TranscodeError(TranscriptionFailure):
    """ffmpeg could not produce the PCM audio track."""
