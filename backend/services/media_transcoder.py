# backend/services/media_transcoder.py
"""
Media Transcoder

Pulls the audio track out of a recorded answer as mono, 16 kHz, 16-bit
linear PCM WAV, which is what the speech backend expects.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from .errors import TranscodeError

logger = logging.getLogger(__name__)


class FFmpegTranscoder:
    SAMPLE_RATE = 16000
    CHANNELS = 1
    CODEC = "pcm_s16le"

    def __init__(self, ffmpeg_binary: str = "ffmpeg", timeout_seconds: float = 300.0):
        self.ffmpeg_binary = ffmpeg_binary
        self.timeout_seconds = timeout_seconds

    def build_command(self, input_path: Path, output_path: Path) -> List[str]:
        return [
            self.ffmpeg_binary,
            "-y",
            "-hide_banner",
            "-loglevel", "error",
            "-i", str(input_path),
            "-vn",
            "-acodec", self.CODEC,
            "-ar", str(self.SAMPLE_RATE),
            "-ac", str(self.CHANNELS),
            "-f", "wav",
            str(output_path),
        ]

    def extract_audio(
        self,
        input_path: Union[str, Path],
        output_path: Optional[Union[str, Path]] = None
    ) -> Path:
        """
        Extract the audio track of input_path.

        Args:
            input_path: Video file on local disk
            output_path: Where to write the WAV (defaults to input with .wav)

        Returns:
            Path of the written WAV file

        Raises:
            TranscodeError: If ffmpeg is missing, times out, or exits non-zero
        """
        source = Path(input_path)
        target = Path(output_path) if output_path else source.with_suffix(".wav")

        logger.info(f"Extracting audio: {source} -> {target}")

        try:
            proc = subprocess.run(
                self.build_command(source, target),
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False
            )
        except FileNotFoundError as e:
            raise TranscodeError(f"ffmpeg not found: {self.ffmpeg_binary}") from e
        except subprocess.TimeoutExpired as e:
            raise TranscodeError(f"Audio extraction timed out after {self.timeout_seconds}s") from e

        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            raise TranscodeError(f"Audio extraction failed ({proc.returncode}): {stderr[:500]}")

        if not target.exists():
            raise TranscodeError(f"Audio extraction produced no output at {target}")

        logger.info(f"Audio extracted ({target.stat().st_size / 1024:.1f} KB)")
        return target
