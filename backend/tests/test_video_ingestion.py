"""
Test suite for Video Ingestion

This module tests the upload path to ensure:
- Non-video, empty and oversized payloads are rejected before storage
- A storage failure writes no metadata row
- The spooled upload copy is deleted on success and on failure
- A stored video is returned straight away and queued for transcription
- A crashing transcription never affects the upload result
- Re-recordings keep history and the newest upload is the current one
- A failed transcription can be queued again from the stored object

Run tests with: pytest backend/tests/test_video_ingestion.py -v
"""

import os
import sys
import pytest
from unittest.mock import MagicMock
from sqlmodel import Session, select

# Add backend directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from models import (
    TRANSCRIPTION_FAILED,
    TRANSCRIPTION_PROCESSING,
    UPLOAD_COMPLETED,
    VideoResponse,
)
from services.errors import StorageFailure, TranscriptionFailure, ValidationError
from services.transcription_pipeline import (
    TranscriptionDispatcher,
    TranscriptionJob,
    TranscriptionPipeline,
)
from services.video_ingestion import VideoIngestionService, generate_file_name


VIDEO = b"\x1aE\xdf\xa3fake-webm-bytes"


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def dispatcher():
    """Dispatcher double; records jobs without running them."""
    return MagicMock()


@pytest.fixture
def ingestion(engine, fake_storage, dispatcher, temp_files):
    return VideoIngestionService(
        engine,
        fake_storage,
        dispatcher,
        temp_files,
        max_video_bytes=1024
    )


@pytest.fixture
def spooled(temp_files):
    """A spooled upload copy like the API writes before ingesting."""
    path = temp_files.scratch_path("uploads", "upload", ".webm")
    path.write_bytes(VIDEO)
    return path


def count_videos(engine) -> int:
    with Session(engine) as db:
        return len(db.exec(select(VideoResponse)).all())


# ============================================================================
# TEST CASES - validation
# ============================================================================

class TestValidation:

    def test_non_video_is_rejected(self, ingestion, fake_storage, engine):
        with pytest.raises(ValidationError):
            ingestion.ingest_video("s-1", "q-1", b"%PDF-1.7", "application/pdf")

        fake_storage.put.assert_not_called()
        assert count_videos(engine) == 0

    def test_empty_payload_is_rejected(self, ingestion, fake_storage):
        with pytest.raises(ValidationError):
            ingestion.ingest_video("s-1", "q-1", b"", "video/webm")
        fake_storage.put.assert_not_called()

    def test_oversized_payload_is_rejected(self, ingestion, fake_storage):
        with pytest.raises(ValidationError):
            ingestion.ingest_video("s-1", "q-1", b"x" * 1025, "video/webm")
        fake_storage.put.assert_not_called()

    def test_blank_ids_are_rejected(self, ingestion):
        with pytest.raises(ValidationError):
            ingestion.ingest_video("  ", "q-1", VIDEO, "video/webm")
        with pytest.raises(ValidationError):
            ingestion.ingest_video("s-1", None, VIDEO, "video/webm")

    def test_rejected_upload_still_drops_spooled_copy(self, ingestion, spooled):
        with pytest.raises(ValidationError):
            ingestion.ingest_video("s-1", "q-1", VIDEO, "audio/mpeg", scratch_path=spooled)
        assert not spooled.exists()

    def test_generated_file_name_matches_type(self):
        name = generate_file_name("video/mp4")
        assert name.startswith("video_")
        assert name.endswith(".mp4")
        assert generate_file_name("video/webm;codecs=vp9").endswith(".webm")


# ============================================================================
# TEST CASES - ingest_video
# ============================================================================

class TestIngestVideo:

    def test_successful_ingest(self, ingestion, fake_storage, dispatcher, engine, spooled):
        video = ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm", scratch_path=spooled)

        assert video.id
        assert video.upload_status == UPLOAD_COMPLETED
        assert video.transcription_status == TRANSCRIPTION_PROCESSING
        assert video.size_bytes == len(VIDEO)
        assert video.storage_key == f"videos/s-1/q-1/{video.file_name}"
        assert video.public_url == f"https://cdn.example.com/{video.storage_key}"
        assert count_videos(engine) == 1
        assert not spooled.exists(), "Spooled copy should be removed after upload"

        key, data, content_type, metadata = fake_storage.put.call_args[0]
        assert data == VIDEO
        assert content_type == "video/webm"
        assert metadata["sessionId"] == "s-1"
        assert metadata["questionId"] == "q-1"

        job = dispatcher.submit.call_args[0][0]
        assert isinstance(job, TranscriptionJob)
        assert job.video_response_id == video.id
        assert job.data == VIDEO

    def test_storage_failure_writes_no_row(self, ingestion, fake_storage, dispatcher, engine, spooled):
        fake_storage.put.side_effect = StorageFailure("bucket unreachable")

        with pytest.raises(StorageFailure):
            ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm", scratch_path=spooled)

        assert count_videos(engine) == 0, "No orphan metadata after a failed upload"
        dispatcher.submit.assert_not_called()
        assert not spooled.exists(), "Spooled copy should be removed after a failure"

    def test_dispatcher_error_does_not_fail_upload(self, ingestion, dispatcher, engine):
        dispatcher.submit.side_effect = RuntimeError("pool shut down")

        video = ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm")

        assert video.id
        assert count_videos(engine) == 1

    def test_upload_survives_failing_transcription(
        self, engine, fake_storage, temp_files, fake_transcoder, fake_speech, scorer
    ):
        """
        Real worker pool and a speech backend that throws: the caller still
        gets its VideoResponse, and no transcript ever appears.
        """
        fake_speech.recognize.side_effect = TranscriptionFailure("backend down")
        pipeline = TranscriptionPipeline(engine, temp_files, fake_transcoder, fake_speech, scorer)
        dispatcher = TranscriptionDispatcher(pipeline, max_workers=1)
        ingestion = VideoIngestionService(engine, fake_storage, dispatcher, temp_files)

        video = ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm")
        dispatcher.shutdown(wait=True)

        assert video.upload_status == UPLOAD_COMPLETED
        assert pipeline.get_transcript(video.id) is None
        assert ingestion.get_video(video.id).transcription_status == TRANSCRIPTION_FAILED


# ============================================================================
# TEST CASES - lookups and deletion
# ============================================================================

class TestVideoLookups:

    def test_newest_upload_is_current(self, ingestion):
        ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm", file_name="first.webm")
        second = ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm", file_name="second.webm")

        current = ingestion.get_current_video("s-1", "q-1")

        assert current.id == second.id
        assert len(ingestion.list_session_videos("s-1")) == 2

    def test_no_upload_yet(self, ingestion):
        assert ingestion.get_current_video("s-1", "q-9") is None

    def test_delete_video_removes_object_and_row(self, ingestion, fake_storage):
        video = ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm")

        assert ingestion.delete_video(video.id) is True

        fake_storage.delete.assert_called_once_with(video.storage_key)
        assert ingestion.get_video(video.id) is None
        assert ingestion.delete_video(video.id) is False

    def test_delete_keeps_row_when_storage_refuses(self, ingestion, fake_storage):
        video = ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm")
        fake_storage.delete.side_effect = StorageFailure("denied")

        with pytest.raises(StorageFailure):
            ingestion.delete_video(video.id)

        assert ingestion.get_video(video.id) is not None


# ============================================================================
# TEST CASES - retry_transcription
# ============================================================================

def mark_failed(engine, video_id):
    with Session(engine) as db:
        row = db.get(VideoResponse, video_id)
        row.transcription_status = TRANSCRIPTION_FAILED
        db.add(row)
        db.commit()


class TestRetryTranscription:

    def test_failed_video_is_read_back_and_requeued(self, ingestion, fake_storage, dispatcher, engine):
        video = ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm")
        mark_failed(engine, video.id)
        fake_storage.get.return_value = VIDEO

        retried = ingestion.retry_transcription(video.id)

        fake_storage.get.assert_called_once_with(video.storage_key)
        assert retried.transcription_status == TRANSCRIPTION_PROCESSING
        assert ingestion.get_video(video.id).transcription_status == TRANSCRIPTION_PROCESSING

        job = dispatcher.submit.call_args[0][0]
        assert dispatcher.submit.call_count == 2
        assert job.video_response_id == video.id
        assert job.data == VIDEO

    def test_processing_video_is_left_alone(self, ingestion, fake_storage, dispatcher):
        video = ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm")

        ingestion.retry_transcription(video.id)

        fake_storage.get.assert_not_called()
        assert dispatcher.submit.call_count == 1

    def test_unreadable_object_keeps_failed_status(self, ingestion, fake_storage, engine):
        video = ingestion.ingest_video("s-1", "q-1", VIDEO, "video/webm")
        mark_failed(engine, video.id)
        fake_storage.get.side_effect = StorageFailure("NoSuchKey")

        with pytest.raises(StorageFailure):
            ingestion.retry_transcription(video.id)

        assert ingestion.get_video(video.id).transcription_status == TRANSCRIPTION_FAILED

    def test_unknown_video(self, ingestion):
        assert ingestion.retry_transcription("no-such-video") is None
