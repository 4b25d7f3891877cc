# api.py
"""
HTTP adapter for the capture and scoring pipeline.

Only translates requests into service calls; authentication and recruiter
CRUD live in front of this service.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from config import Settings
from container import ServiceContainer, build_container
from services import (
    AlreadyCompleted,
    RetakeExhausted,
    ScoreUnavailable,
    StorageFailure,
    TempFileManager,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ---------- Response schema ----------
class ProgressOut(BaseModel):
    sessionId: str
    questionId: str
    attemptsUsed: int
    isCompleted: bool
    canRetake: bool
    lastAttemptAt: Optional[str] = None

class VideoOut(BaseModel):
    id: str
    sessionId: str
    questionId: str
    fileName: str
    streamingUrl: str
    storageKey: str
    fileSize: int
    mimeType: str
    uploadStatus: str
    transcriptionStatus: str
    createdAt: str

class TranscriptOut(BaseModel):
    id: str
    videoResponseId: str
    sessionId: str
    questionId: str
    text: str
    confidence: float
    wordCount: int
    createdAt: str

class ScoreOut(BaseModel):
    available: bool
    reason: Optional[str] = None
    sessionId: str
    overallScore: Optional[float] = None
    technicalScore: Optional[float] = None
    softSkillsScore: Optional[float] = None
    experienceScore: Optional[float] = None
    generalScore: Optional[float] = None
    keywordsFound: Optional[int] = None
    keywordsPossible: Optional[int] = None
    breakdown: Optional[Dict[str, Any]] = None
    calculatedAt: Optional[str] = None


# ---------- Helpers ----------
def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None

def progress_out(container: ServiceContainer, session_id: str, question_id: str) -> ProgressOut:
    progress = container.attempts.get_progress(session_id, question_id)
    return ProgressOut(
        sessionId=session_id,
        questionId=question_id,
        attemptsUsed=progress.attempts_used if progress else 0,
        isCompleted=progress.is_completed if progress else False,
        canRetake=container.attempts.can_retake(session_id, question_id),
        lastAttemptAt=_iso(progress.last_attempt_at) if progress else None,
    )

def video_out(video) -> VideoOut:
    return VideoOut(
        id=video.id,
        sessionId=video.session_id,
        questionId=video.question_id,
        fileName=video.file_name,
        streamingUrl=video.public_url,
        storageKey=video.storage_key,
        fileSize=video.size_bytes,
        mimeType=video.mime_type,
        uploadStatus=video.upload_status,
        transcriptionStatus=video.transcription_status,
        createdAt=_iso(video.created_at),
    )

def score_out(session_id: str, score) -> ScoreOut:
    if score is None:
        return ScoreOut(available=False, reason="not_calculated", sessionId=session_id)
    if isinstance(score, ScoreUnavailable):
        return ScoreOut(available=False, reason=score.reason, sessionId=session_id)
    return ScoreOut(
        available=True,
        sessionId=session_id,
        overallScore=score.overall_score,
        technicalScore=score.technical_score,
        softSkillsScore=score.soft_skills_score,
        experienceScore=score.experience_score,
        generalScore=score.general_score,
        keywordsFound=score.found_count,
        keywordsPossible=score.possible_count,
        breakdown=score.breakdown,
        calculatedAt=_iso(score.calculated_at),
    )


def create_app(container: Optional[ServiceContainer] = None, check_backends: bool = True) -> FastAPI:
    """
    Build the FastAPI app.

    Without a container, settings are read from the environment here and the
    services are built from them at startup. Startup aborts when storage or
    speech recognition can't be reached.
    """
    settings = container.settings if container else Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = container or build_container(settings)
        if check_backends:
            svc.verify_backends()
        svc.start()
        app.state.container = svc
        logger.info("Interview pipeline started")
        try:
            yield
        finally:
            svc.stop()
            logger.info("Interview pipeline stopped")

    app = FastAPI(lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_container(request: Request) -> ServiceContainer:
        return request.app.state.container

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    # ---------- Attempts ----------
    @app.get("/api/sessions/{session_id}/questions/{question_id}/progress", response_model=ProgressOut)
    def get_progress(session_id: str, question_id: str, request: Request):
        try:
            return progress_out(get_container(request), session_id, question_id)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/api/sessions/{session_id}/progress", response_model=List[ProgressOut])
    def get_session_progress(session_id: str, request: Request):
        svc = get_container(request)
        try:
            rows = svc.attempts.get_session_progress(session_id)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return [progress_out(svc, row.session_id, row.question_id) for row in rows]

    @app.post("/api/sessions/{session_id}/questions/{question_id}/attempt", response_model=ProgressOut)
    def record_attempt(session_id: str, question_id: str, request: Request):
        svc = get_container(request)
        try:
            svc.attempts.record_attempt(session_id, question_id)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except (RetakeExhausted, AlreadyCompleted) as e:
            raise HTTPException(status_code=409, detail=str(e))
        return progress_out(svc, session_id, question_id)

    @app.post("/api/sessions/{session_id}/questions/{question_id}/complete", response_model=ProgressOut)
    def complete_question(session_id: str, question_id: str, request: Request):
        svc = get_container(request)
        try:
            progress = svc.attempts.mark_completed(session_id, question_id)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if progress is None:
            raise HTTPException(status_code=404, detail="No attempt recorded for this question")
        return progress_out(svc, session_id, question_id)

    # ---------- Videos ----------
    @app.post("/api/videos/upload", response_model=VideoOut)
    def upload_video(
        request: Request,
        video: UploadFile = File(...),
        sessionId: str = Form(...),
        questionId: str = Form(...),
    ):
        # Plain def: the disk write, bucket upload and commit all block,
        # so FastAPI runs this in its threadpool
        svc = get_container(request)
        limit = svc.settings.max_video_bytes
        content_type = video.content_type or ""

        # One byte over the limit is enough to reject as oversized
        data = video.file.read(limit + 1)

        try:
            svc.ingestion.validate(sessionId, questionId, data, content_type)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

        scratch = svc.temp_files.scratch_path(TempFileManager.UPLOADS_DIR, "upload")
        scratch.write_bytes(data)

        try:
            stored = svc.ingestion.ingest_video(
                sessionId,
                questionId,
                data,
                content_type,
                scratch_path=scratch,
            )
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except StorageFailure as e:
            raise HTTPException(status_code=502, detail=f"Failed to upload video: {e}")

        return video_out(stored)

    @app.get("/api/videos/session/{session_id}/question/{question_id}", response_model=VideoOut)
    def get_video(session_id: str, question_id: str, request: Request):
        try:
            stored = get_container(request).ingestion.get_current_video(session_id, question_id)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if stored is None:
            raise HTTPException(status_code=404, detail="Video not found")
        return video_out(stored)

    @app.get("/api/videos/{video_id}/transcript", response_model=TranscriptOut)
    def get_transcript(video_id: str, request: Request):
        try:
            transcript = get_container(request).pipeline.get_transcript(video_id)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if transcript is None:
            raise HTTPException(status_code=404, detail="Transcript not available")
        return TranscriptOut(
            id=transcript.id,
            videoResponseId=transcript.video_response_id,
            sessionId=transcript.session_id,
            questionId=transcript.question_id,
            text=transcript.text,
            confidence=transcript.confidence,
            wordCount=transcript.word_count,
            createdAt=_iso(transcript.created_at),
        )

    @app.post("/api/videos/{video_id}/transcribe", response_model=VideoOut)
    def retry_transcription(video_id: str, request: Request):
        try:
            stored = get_container(request).ingestion.retry_transcription(video_id)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except StorageFailure as e:
            raise HTTPException(status_code=502, detail=f"Failed to read video: {e}")
        if stored is None:
            raise HTTPException(status_code=404, detail="Video not found")
        return video_out(stored)

    # ---------- Scores ----------
    @app.get("/api/sessions/{session_id}/score", response_model=ScoreOut)
    def get_score(session_id: str, request: Request):
        try:
            score = get_container(request).scorer.get_latest_score(session_id)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return score_out(session_id, score)

    @app.post("/api/sessions/{session_id}/score/recompute", response_model=ScoreOut)
    def recompute_score(session_id: str, request: Request):
        try:
            score = get_container(request).scorer.recompute_score(session_id)
        except ValidationError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return score_out(session_id, score)

    return app


app = create_app()
