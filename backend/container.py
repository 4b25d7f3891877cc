# container.py
"""
Builds every service once at process start and hands them out explicitly.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from config import Settings
from db import create_db_engine, init_db
from services import (
    AttemptTracker,
    FFmpegTranscoder,
    KeywordScoringEngine,
    R2StorageGateway,
    TempFileManager,
    TranscriptionDispatcher,
    TranscriptionPipeline,
    VideoIngestionService,
    WhisperSpeechBackend,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    engine: Engine
    temp_files: TempFileManager
    storage: object
    speech_backend: object
    attempts: AttemptTracker
    scorer: KeywordScoringEngine
    pipeline: TranscriptionPipeline
    dispatcher: TranscriptionDispatcher
    ingestion: VideoIngestionService

    def verify_backends(self) -> None:
        """Abort startup when storage or speech recognition is unreachable."""
        if not self.storage.check_connection():
            raise RuntimeError("Storage backend is unreachable")
        if not self.speech_backend.check_connection():
            raise RuntimeError("Speech backend is unreachable")

    def start(self) -> None:
        init_db(self.engine)
        self.temp_files.ensure_dirs()
        self.temp_files.start_periodic_cleanup(
            self.settings.temp_cleanup_interval_minutes,
            self.settings.temp_max_age_minutes
        )

    def stop(self) -> None:
        self.temp_files.stop_periodic_cleanup()
        self.dispatcher.shutdown(wait=True)


def build_container(
    settings: Settings,
    engine: Engine = None,
    storage=None,
    speech_backend=None,
    transcoder=None
) -> ServiceContainer:
    """
    Wire the services. Any collaborator can be passed in (tests use fakes);
    the rest are built from settings.
    """
    engine = engine or create_db_engine(settings.database_url)
    temp_files = TempFileManager(settings.temp_root)

    if storage is None:
        storage = R2StorageGateway(
            bucket_name=settings.r2_bucket_name,
            public_base_url=settings.r2_public_base_url,
            endpoint_url=settings.r2_endpoint,
            access_key_id=settings.r2_access_key_id,
            secret_access_key=settings.r2_secret_access_key
        )
    if speech_backend is None:
        speech_backend = WhisperSpeechBackend(
            api_key=settings.openai_api_key,
            model=settings.speech_model,
            timeout_seconds=settings.speech_timeout_seconds
        )
    transcoder = transcoder or FFmpegTranscoder(settings.ffmpeg_binary)

    attempts = AttemptTracker(engine, max_retakes=settings.max_retakes)
    scorer = KeywordScoringEngine(engine)
    pipeline = TranscriptionPipeline(
        engine,
        temp_files,
        transcoder,
        speech_backend,
        scorer,
        language_code=settings.speech_language
    )
    dispatcher = TranscriptionDispatcher(pipeline, max_workers=settings.transcription_workers)
    ingestion = VideoIngestionService(
        engine,
        storage,
        dispatcher,
        temp_files,
        max_video_bytes=settings.max_video_bytes
    )

    logger.info("Service container built")
    return ServiceContainer(
        settings=settings,
        engine=engine,
        temp_files=temp_files,
        storage=storage,
        speech_backend=speech_backend,
        attempts=attempts,
        scorer=scorer,
        pipeline=pipeline,
        dispatcher=dispatcher,
        ingestion=ingestion,
    )
