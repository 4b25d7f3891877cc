# backend/services/video_ingestion.py
"""
Video Ingestion

Takes a recorded answer, pushes it to durable storage and records its
metadata. Metadata is only written after storage confirms the upload, so a
failed upload never leaves an orphan row. Transcription is queued once the
row exists and the caller gets its VideoResponse back straight away.
"""

import time
import logging
from pathlib import Path
from typing import List, Optional, Union
from uuid import uuid4

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from models import (
    TRANSCRIPTION_FAILED,
    TRANSCRIPTION_PROCESSING,
    UPLOAD_COMPLETED,
    VideoResponse,
)
from .attempt_tracker import require_id
from .errors import ValidationError
from .storage_gateway import build_video_key
from .temp_files import TempFileManager
from .transcription_pipeline import VIDEO_SUFFIXES, TranscriptionJob

logger = logging.getLogger(__name__)

DEFAULT_MAX_VIDEO_BYTES = 100 * 1024 * 1024


def generate_file_name(mime_type: str) -> str:
    extension = VIDEO_SUFFIXES.get((mime_type or "").split(";")[0].strip(), ".webm")
    return f"video_{int(time.time() * 1000)}_{uuid4().hex[:8]}{extension}"


class VideoIngestionService:
    """
    Stores recorded answers and schedules their transcription.

    Args:
        engine: SQLAlchemy engine for video metadata
        storage: Storage gateway (put/delete)
        dispatcher: Object with submit(TranscriptionJob); returns immediately
        temp_files: Scratch file manager used to drop the spooled upload
        max_video_bytes: Largest accepted payload
    """

    def __init__(
        self,
        engine: Engine,
        storage,
        dispatcher,
        temp_files: TempFileManager,
        max_video_bytes: int = DEFAULT_MAX_VIDEO_BYTES
    ):
        self.engine = engine
        self.storage = storage
        self.dispatcher = dispatcher
        self.temp_files = temp_files
        self.max_video_bytes = max_video_bytes

    def validate(self, session_id: str, question_id: str, data: bytes, mime_type: str) -> None:
        require_id(session_id, "session_id")
        require_id(question_id, "question_id")

        if not mime_type or not mime_type.lower().startswith("video/"):
            raise ValidationError("Only video files are allowed")
        if not data:
            raise ValidationError("No video data provided")
        if len(data) > self.max_video_bytes:
            raise ValidationError(
                f"Video is {len(data)} bytes; the limit is {self.max_video_bytes} bytes"
            )

    def ingest_video(
        self,
        session_id: str,
        question_id: str,
        data: bytes,
        mime_type: str,
        file_name: Optional[str] = None,
        scratch_path: Optional[Union[str, Path]] = None
    ) -> VideoResponse:
        """
        Store a recorded answer and queue it for transcription.

        Args:
            session_id: Interview session
            question_id: Question being answered
            data: Video bytes, already held in memory
            mime_type: Must be video/*
            file_name: Object file name (generated when omitted)
            scratch_path: Spooled copy of the upload; deleted on every exit path

        Returns:
            The stored VideoResponse (transcription_status=processing)

        Raises:
            ValidationError: Bad identifiers, non-video or oversized payload
            StorageFailure: Upload failed; nothing was written
        """
        try:
            self.validate(session_id, question_id, data, mime_type)
            session_id = session_id.strip()
            question_id = question_id.strip()
            file_name = file_name or generate_file_name(mime_type)
            key = build_video_key(session_id, question_id, file_name)

            logger.info(f"Ingesting video: session={session_id} question={question_id} file={file_name}")

            stored = self.storage.put(
                key,
                data,
                mime_type,
                {"sessionId": session_id, "questionId": question_id, "originalName": file_name}
            )

            video = VideoResponse(
                session_id=session_id,
                question_id=question_id,
                file_name=file_name,
                storage_key=stored.key,
                public_url=stored.url,
                size_bytes=len(data),
                mime_type=mime_type,
                upload_status=UPLOAD_COMPLETED,
                transcription_status=TRANSCRIPTION_PROCESSING,
            )
            with Session(self.engine, expire_on_commit=False) as db:
                db.add(video)
                db.commit()

            logger.info(f"Video metadata saved: {video.id} -> {video.public_url}")
        finally:
            # The bytes are in memory now; the spooled copy is no longer needed
            self.temp_files.force_delete(scratch_path)

        self._schedule_transcription(video, data)
        return video

    def _schedule_transcription(self, video: VideoResponse, data: bytes) -> None:
        job = TranscriptionJob(
            video_response_id=video.id,
            session_id=video.session_id,
            question_id=video.question_id,
            data=data,
            mime_type=video.mime_type,
        )
        try:
            self.dispatcher.submit(job)
        except Exception:
            # The video is stored; a lost transcription only means no transcript
            logger.exception(f"Could not queue transcription for video {video.id}")

    def retry_transcription(self, video_id: str) -> Optional[VideoResponse]:
        """
        Queue a failed transcription again, reading the video back from storage.

        Videos that are still processing or already transcribed are returned
        unchanged.

        Returns:
            The VideoResponse, or None if the video doesn't exist

        Raises:
            StorageFailure: The stored object couldn't be read
        """
        video = self.get_video(video_id)
        if video is None:
            return None
        if video.transcription_status != TRANSCRIPTION_FAILED:
            logger.info(f"Video {video.id} is {video.transcription_status}; no retry needed")
            return video

        data = self.storage.get(video.storage_key)

        with Session(self.engine) as db:
            db.exec(
                update(VideoResponse)
                .where(VideoResponse.id == video.id)
                .values(transcription_status=TRANSCRIPTION_PROCESSING)
            )
            db.commit()
        video.transcription_status = TRANSCRIPTION_PROCESSING

        logger.info(f"Retrying transcription for video {video.id}")
        self._schedule_transcription(video, data)
        return video

    def get_video(self, video_id: str) -> Optional[VideoResponse]:
        video_id = require_id(video_id, "video_id")
        with Session(self.engine, expire_on_commit=False) as db:
            return db.get(VideoResponse, video_id)

    def get_current_video(self, session_id: str, question_id: str) -> Optional[VideoResponse]:
        """Most recent upload for the question; re-recordings don't overwrite rows."""
        session_id = require_id(session_id, "session_id")
        question_id = require_id(question_id, "question_id")
        with Session(self.engine, expire_on_commit=False) as db:
            return db.exec(
                select(VideoResponse)
                .where(
                    VideoResponse.session_id == session_id,
                    VideoResponse.question_id == question_id,
                )
                .order_by(VideoResponse.created_at.desc())
                .limit(1)
            ).first()

    def list_session_videos(self, session_id: str) -> List[VideoResponse]:
        session_id = require_id(session_id, "session_id")
        with Session(self.engine, expire_on_commit=False) as db:
            return list(db.exec(
                select(VideoResponse)
                .where(VideoResponse.session_id == session_id)
                .order_by(VideoResponse.created_at)
            ).all())

    def delete_video(self, video_id: str) -> bool:
        """
        Remove a stored answer and its metadata row.

        The object is deleted first; if storage refuses, the row stays so the
        object isn't orphaned.
        """
        video = self.get_video(video_id)
        if video is None:
            return False

        self.storage.delete(video.storage_key)

        with Session(self.engine) as db:
            row = db.get(VideoResponse, video.id)
            if row is not None:
                db.delete(row)
                db.commit()

        logger.info(f"Video {video.id} deleted")
        return True
