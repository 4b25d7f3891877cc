# backend/services/speech_backend.py
"""
Speech Backend

Turns extracted PCM audio into transcript segments using OpenAI Whisper.
Whisper punctuates its output on its own, so "automatic punctuation" needs
no extra flag.
"""

import io
import math
import logging
from dataclasses import dataclass
from typing import List, Optional

from openai import OpenAI

from .errors import TranscriptionFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecognitionSegment:
    transcript: str
    confidence: float


def logprob_to_confidence(avg_logprob: Optional[float]) -> float:
    """Convert Whisper's average token log-probability into a 0-1 confidence."""
    if avg_logprob is None:
        return 0.0
    try:
        value = math.exp(float(avg_logprob))
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return max(0.0, min(1.0, value))


class WhisperSpeechBackend:
    """
    Speech backend backed by OpenAI's transcription API.

    Attributes:
        client: OpenAI client (built with a request timeout)
        model: Transcription model name
    """

    SUPPORTED_ENCODINGS = ("LINEAR16",)

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "whisper-1",
        timeout_seconds: float = 120.0,
        client: Optional[OpenAI] = None
    ):
        if client is None:
            if not api_key:
                logger.warning("No OpenAI API key found - transcription will not work")
            client = OpenAI(api_key=api_key, timeout=timeout_seconds)
        self.client = client
        self.model = model

    def recognize(
        self,
        audio: bytes,
        sample_rate: int = 16000,
        encoding: str = "LINEAR16",
        language_code: str = "en-US"
    ) -> List[RecognitionSegment]:
        """
        Transcribe a mono PCM16 WAV payload.

        Args:
            audio: WAV bytes
            sample_rate: Sample rate of the payload (the WAV header carries it too)
            encoding: Must be LINEAR16
            language_code: BCP-47 code, e.g. en-US; Whisper takes the language part

        Returns:
            One segment per recognized utterance, in order

        Raises:
            TranscriptionFailure: On empty audio, unsupported encoding, or API errors
        """
        if not audio:
            raise TranscriptionFailure("No audio to transcribe")
        if encoding not in self.SUPPORTED_ENCODINGS:
            raise TranscriptionFailure(f"Unsupported audio encoding: {encoding}")

        language = (language_code or "en").split("-")[0].lower()

        logger.info(
            f"Submitting {len(audio) / 1024:.1f} KB of audio "
            f"({sample_rate} Hz, {encoding}, {language}) to {self.model}"
        )

        try:
            response = self.client.audio.transcriptions.create(
                model=self.model,
                file=("answer.wav", io.BytesIO(audio), "audio/wav"),
                response_format="verbose_json",
                temperature=0,
                language=language
            )
        except Exception as e:
            logger.error(f"Speech recognition failed: {e}")
            raise TranscriptionFailure(f"Speech recognition failed: {e}") from e

        segments = getattr(response, "segments", None) or []
        results = [
            RecognitionSegment(
                transcript=(getattr(seg, "text", "") or "").strip(),
                confidence=logprob_to_confidence(getattr(seg, "avg_logprob", None))
            )
            for seg in segments
        ]

        # Some models return only the flat text
        if not results:
            text = (getattr(response, "text", "") or "").strip()
            if text:
                results.append(RecognitionSegment(transcript=text, confidence=0.0))

        logger.info(f"Speech recognition returned {len(results)} segments")
        return results

    def check_connection(self) -> bool:
        """Return True when the transcription model is reachable."""
        try:
            self.client.models.retrieve(self.model)
            logger.info(f"Speech backend connection OK (model={self.model})")
            return True
        except Exception as e:
            logger.error(f"Speech backend connection failed: {e}")
            return False
