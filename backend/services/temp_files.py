# backend/services/temp_files.py
"""
Scratch File Lifecycle Manager

Owns the scratch directories used while a video is being uploaded and
transcribed:
- uploads: spooled request bodies waiting to be pushed to storage
- temp_audio: video copies and extracted WAV files for transcription
- temp_downloads: objects pulled back from storage

Files are deleted explicitly when a job finishes (with retry), and a
periodic sweep removes anything a crashed job left behind.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Iterable, List, Optional, Union
from uuid import uuid4

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class TempFileManager:
    """
    Manages scratch directories under a single root.

    Attributes:
        root: Directory the managed scratch dirs live under
        dir_names: Names of the managed scratch dirs
        retry_delay_seconds: Pause between failed delete attempts
    """

    UPLOADS_DIR = "uploads"
    AUDIO_DIR = "temp_audio"
    DOWNLOADS_DIR = "temp_downloads"

    DEFAULT_DIRS = (DOWNLOADS_DIR, AUDIO_DIR, UPLOADS_DIR)

    def __init__(
        self,
        root: PathLike = ".",
        dir_names: Iterable[str] = DEFAULT_DIRS,
        retry_delay_seconds: float = 1.0
    ):
        self.root = Path(root)
        self.dir_names = tuple(dir_names)
        self.retry_delay_seconds = retry_delay_seconds

        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None

    @property
    def managed_dirs(self) -> List[Path]:
        return [self.root / name for name in self.dir_names]

    def ensure_dirs(self) -> None:
        for dir_path in self.managed_dirs:
            dir_path.mkdir(parents=True, exist_ok=True)

    def scratch_path(self, dir_name: str, prefix: str = "tmp", suffix: str = "") -> Path:
        """
        Reserve a unique file path inside one of the managed dirs.

        The file itself is not created.
        """
        if dir_name not in self.dir_names:
            raise ValueError(f"'{dir_name}' is not a managed scratch directory")

        dir_path = self.root / dir_name
        dir_path.mkdir(parents=True, exist_ok=True)

        timestamp = int(time.time() * 1000)
        return dir_path / f"{prefix}_{timestamp}_{uuid4().hex[:8]}{suffix}"

    def force_delete(self, path: Optional[PathLike], max_retries: int = 3) -> bool:
        """
        Delete a file, retrying transient failures.

        A missing file counts as already deleted.

        Args:
            path: File to delete (None is treated as nothing to delete)
            max_retries: Number of attempts before giving up

        Returns:
            True when the file is gone, False after all retries failed
        """
        if path is None:
            return True

        file_path = Path(path)
        attempts = max(1, max_retries)

        for attempt in range(1, attempts + 1):
            try:
                if not file_path.exists():
                    return True
                file_path.unlink()
                logger.info(f"Deleted scratch file: {file_path}")
                return True
            except FileNotFoundError:
                return True
            except OSError as e:
                logger.warning(f"Attempt {attempt} failed to delete {file_path}: {e}")
                if attempt < attempts:
                    time.sleep(self.retry_delay_seconds)

        logger.error(f"Failed to delete {file_path} after {attempts} attempts")
        return False

    def sweep(self, max_age_minutes: float = 30) -> int:
        """
        Delete scratch files older than max_age_minutes from every managed dir.

        Returns:
            Number of files deleted
        """
        max_age_seconds = max_age_minutes * 60
        now = time.time()
        total_deleted = 0

        for dir_path in self.managed_dirs:
            if not dir_path.is_dir():
                continue

            deleted = 0
            try:
                entries = list(dir_path.iterdir())
            except OSError as e:
                logger.error(f"Error cleaning directory {dir_path}: {e}")
                continue

            for entry in entries:
                try:
                    if not entry.is_file():
                        continue
                    age = now - entry.stat().st_mtime
                    if age > max_age_seconds:
                        entry.unlink()
                        deleted += 1
                        logger.info(f"Deleted old scratch file: {entry}")
                except FileNotFoundError:
                    # Removed by its own job between listing and stat
                    continue
                except OSError as e:
                    logger.error(f"Error processing file {entry}: {e}")

            if deleted:
                logger.info(f"Cleaned up {deleted} old files from {dir_path}")
            total_deleted += deleted

        return total_deleted

    def start_periodic_cleanup(
        self,
        interval_minutes: float = 15,
        max_age_minutes: float = 30
    ) -> threading.Thread:
        """
        Sweep now, then every interval_minutes on a daemon thread until
        stop_periodic_cleanup() is called.
        """
        if self._cleanup_thread is not None and self._cleanup_thread.is_alive():
            logger.warning("Periodic scratch cleanup already running")
            return self._cleanup_thread

        logger.info(f"Starting periodic scratch cleanup every {interval_minutes} minutes")
        self._stop_event.clear()

        self.sweep(max_age_minutes)

        interval_seconds = interval_minutes * 60

        def _run():
            while not self._stop_event.wait(interval_seconds):
                logger.info("Running scheduled scratch cleanup...")
                try:
                    self.sweep(max_age_minutes)
                except Exception:
                    logger.exception("Scheduled scratch cleanup failed")

        self._cleanup_thread = threading.Thread(
            target=_run,
            name="scratch-cleanup",
            daemon=True
        )
        self._cleanup_thread.start()
        return self._cleanup_thread

    def stop_periodic_cleanup(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._cleanup_thread is not None:
            self._cleanup_thread.join(timeout)
            self._cleanup_thread = None
            logger.info("Periodic scratch cleanup stopped")
