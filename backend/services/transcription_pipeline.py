# backend/services/transcription_pipeline.py
"""
Transcription Pipeline

Background half of a video upload. For each stored answer:
1. Write the held video bytes to a scratch file
2. Extract mono 16 kHz PCM16 WAV audio
3. Send the audio to the speech backend
4. Join the segments into one transcript
5. Store the transcript
6. Recompute the session's keyword score

Nothing in here raises to the uploader: a failed run is logged, the video is
marked transcription_status=failed and no transcript row is written. Scratch
files are removed on every exit path.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from models import (
    TRANSCRIPTION_COMPLETED,
    TRANSCRIPTION_FAILED,
    Transcript,
    VideoResponse,
)
from .attempt_tracker import require_id
from .keyword_scoring import KeywordScoringEngine, ScoreUnavailable
from .speech_backend import RecognitionSegment
from .temp_files import TempFileManager

logger = logging.getLogger(__name__)

SAMPLE_RATE_HZ = 16000
AUDIO_ENCODING = "LINEAR16"

VIDEO_SUFFIXES = {
    "video/webm": ".webm",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/x-matroska": ".mkv",
    "video/ogg": ".ogv",
}


@dataclass(frozen=True)
class TranscriptionJob:
    """Plain values handed to a worker; nothing request-scoped."""
    video_response_id: str
    session_id: str
    question_id: str
    data: bytes
    mime_type: str = "video/webm"


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    confidence: float
    word_count: int


def count_words(text: str) -> int:
    return len([word for word in (text or "").strip().split() if word])


def aggregate_segments(segments: Iterable[RecognitionSegment]) -> TranscriptionResult:
    """
    Join recognized segments into one transcript.

    Segments are joined with a single space, confidence is the mean of the
    segment confidences (0 when there are none).
    """
    segments = list(segments)

    text = " ".join((seg.transcript or "").strip() for seg in segments).strip()
    confidence = (
        sum(seg.confidence or 0.0 for seg in segments) / len(segments)
        if segments else 0.0
    )

    return TranscriptionResult(
        text=text,
        confidence=max(0.0, min(1.0, confidence)),
        word_count=count_words(text),
    )


class TranscriptionPipeline:
    """
    Runs one transcription job end to end.

    Args:
        engine: SQLAlchemy engine for videos and transcripts
        temp_files: Scratch file manager
        transcoder: Object with extract_audio(input_path) -> output_path
        speech_backend: Object with recognize(audio, sample_rate, encoding, language_code)
        scorer: Keyword scoring engine triggered after each stored transcript
        language_code: Deployment language passed to the speech backend
    """

    def __init__(
        self,
        engine: Engine,
        temp_files: TempFileManager,
        transcoder,
        speech_backend,
        scorer: KeywordScoringEngine,
        language_code: str = "en-US"
    ):
        self.engine = engine
        self.temp_files = temp_files
        self.transcoder = transcoder
        self.speech_backend = speech_backend
        self.scorer = scorer
        self.language_code = language_code

    def transcribe_bytes(self, data: bytes, mime_type: str) -> TranscriptionResult:
        """
        Steps 1-4: scratch file, audio extraction, recognition, aggregation.

        Raises whatever the transcoder or speech backend raises.
        """
        suffix = VIDEO_SUFFIXES.get((mime_type or "").split(";")[0].strip(), ".webm")
        video_path = self.temp_files.scratch_path(TempFileManager.AUDIO_DIR, "temp_video", suffix)
        audio_path: Optional[Path] = None

        try:
            video_path.write_bytes(data)
            logger.info(f"Scratch video written: {video_path} ({len(data) / 1024 / 1024:.2f} MB)")

            audio_path = video_path.with_suffix(".wav")
            audio_path = Path(self.transcoder.extract_audio(video_path, audio_path))
            audio = audio_path.read_bytes()

            segments = self.speech_backend.recognize(
                audio,
                SAMPLE_RATE_HZ,
                AUDIO_ENCODING,
                self.language_code
            )
            return aggregate_segments(segments)
        finally:
            self.temp_files.force_delete(video_path)
            self.temp_files.force_delete(audio_path or video_path.with_suffix(".wav"))

    def process(self, job: TranscriptionJob) -> Optional[Transcript]:
        """
        Run a job. Never raises.

        Returns:
            The stored Transcript, or None when transcription failed or the
            video already had one
        """
        if self.get_transcript(job.video_response_id) is not None:
            logger.info(f"Video {job.video_response_id} already transcribed; skipping")
            return None

        logger.info(f"Processing video for transcription: {job.video_response_id}")

        try:
            result = self.transcribe_bytes(job.data, job.mime_type)
            transcript = self._save_transcript(job, result)
        except Exception:
            logger.exception(
                f"Transcription failed for video {job.video_response_id}; "
                f"the upload itself is unaffected"
            )
            self._set_status(job.video_response_id, TRANSCRIPTION_FAILED)
            return None

        logger.info(
            f"Transcript saved for video {job.video_response_id}: "
            f"{result.word_count} words, confidence={result.confidence:.2f}"
        )

        try:
            score = self.scorer.recompute_score(job.session_id)
            if isinstance(score, ScoreUnavailable):
                logger.info(f"Score not available for session {job.session_id}: {score.reason}")
        except Exception:
            logger.exception(f"Keyword scoring failed for session {job.session_id}")

        return transcript

    def _save_transcript(self, job: TranscriptionJob, result: TranscriptionResult) -> Transcript:
        transcript = Transcript(
            video_response_id=job.video_response_id,
            session_id=job.session_id,
            question_id=job.question_id,
            text=result.text,
            confidence=result.confidence,
            word_count=result.word_count,
        )
        with Session(self.engine, expire_on_commit=False) as db:
            db.add(transcript)
            db.exec(
                update(VideoResponse)
                .where(VideoResponse.id == job.video_response_id)
                .values(transcription_status=TRANSCRIPTION_COMPLETED)
            )
            db.commit()
        return transcript

    def _set_status(self, video_response_id: str, status: str) -> None:
        try:
            with Session(self.engine) as db:
                db.exec(
                    update(VideoResponse)
                    .where(VideoResponse.id == video_response_id)
                    .values(transcription_status=status)
                )
                db.commit()
        except Exception:
            logger.exception(f"Could not mark video {video_response_id} as {status}")

    def get_transcript(self, video_response_id: str) -> Optional[Transcript]:
        video_response_id = require_id(video_response_id, "video_response_id")
        with Session(self.engine, expire_on_commit=False) as db:
            return db.exec(
                select(Transcript).where(Transcript.video_response_id == video_response_id)
            ).first()

    def list_session_transcripts(self, session_id: str) -> List[Transcript]:
        session_id = require_id(session_id, "session_id")
        with Session(self.engine, expire_on_commit=False) as db:
            return list(db.exec(
                select(Transcript)
                .where(Transcript.session_id == session_id)
                .order_by(Transcript.created_at)
            ).all())


class TranscriptionDispatcher:
    """
    Bounded worker pool for transcription jobs, keyed by video id.

    submit() returns immediately; a video that is already queued or running
    is not queued again. Extending past one process means swapping this for a
    durable job queue.
    """

    def __init__(self, pipeline: TranscriptionPipeline, max_workers: int = 2):
        self.pipeline = pipeline
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="transcription"
        )
        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}

    def submit(self, job: TranscriptionJob) -> Optional[Future]:
        with self._lock:
            if job.video_response_id in self._in_flight:
                logger.info(f"Transcription already in flight for video {job.video_response_id}")
                return None
            future = self._executor.submit(self.pipeline.process, job)
            self._in_flight[job.video_response_id] = future

        future.add_done_callback(lambda f, key=job.video_response_id: self._finished(key, f))
        logger.info(f"Transcription queued for video {job.video_response_id}")
        return future

    def _finished(self, video_response_id: str, future: Future) -> None:
        with self._lock:
            self._in_flight.pop(video_response_id, None)
        error = future.exception() if not future.cancelled() else None
        if error is not None:
            logger.error(f"Background transcription crashed for video {video_response_id}: {error}")

    def in_flight(self) -> List[str]:
        with self._lock:
            return list(self._in_flight)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        logger.info("Transcription dispatcher stopped")
