"""Wraps the external ffmpeg encoder used to render lyric videos."""

import ffmpeg
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from typing import List, Optional

from .exceptions import RenderError, RenderKind
from .utils import ensure_dir_exists

logger = logging.getLogger(__name__)


class Encoder(ABC):
    """Abstract base class for the encoder the render pipeline drives. All methods block."""

    @abstractmethod
    def load(self) -> None:
        """Makes the encoder usable. Raises RenderError(ENCODER_INIT_FAILED) on failure."""

    @abstractmethod
    def stage(self, source_path: str, name: str) -> str:
        """Copies an input into the working set and returns its path there."""

    @abstractmethod
    def path_for(self, name: str) -> str:
        """Path of a file named name inside the working set."""

    @abstractmethod
    def media_duration(self, path: str) -> Optional[float]:
        """Media duration in seconds, or None when it cannot be determined."""

    @abstractmethod
    def run(self, stream) -> None:
        """Runs an ffmpeg-python output stream. Raises RenderError(ENCODE_FAILED)."""

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Returns the bytes of a file produced in the working set."""

    @abstractmethod
    def cleanup(self) -> None:
        """Removes the working set."""

    def describe(self, stream) -> List[str]:
        """The command line a stream compiles to, for logging and inspection."""
        return ffmpeg.compile(stream)


class FFmpegEncoder(Encoder):
    """Drives the ffmpeg binary through ffmpeg-python."""

    def __init__(self, ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None,
                 temp_dir: Optional[str] = None):
        """
        Initializes the FFmpegEncoder.

        Args:
            ffmpeg_path: Optional path to the ffmpeg executable.
                         If None, assumes ffmpeg is in the system PATH.
            ffprobe_path: Optional path to the ffprobe executable.
            temp_dir: Parent directory for the working set; the system default when None.
        """
        self.ffmpeg_cmd = ffmpeg_path or 'ffmpeg'
        self.ffprobe_cmd = ffprobe_path or 'ffprobe'
        self.temp_dir = temp_dir
        self.work_dir: Optional[str] = None
        logger.info(f"Using ffmpeg command: {self.ffmpeg_cmd}")

    def describe(self, stream) -> List[str]:
        return ffmpeg.compile(stream, cmd=self.ffmpeg_cmd)

    def load(self) -> None:
        resolved = shutil.which(self.ffmpeg_cmd)
        if resolved is None:
            logger.error(f"ffmpeg executable not found: '{self.ffmpeg_cmd}'")
            raise RenderError(f"ffmpeg could not be found ('{self.ffmpeg_cmd}')", RenderKind.ENCODER_INIT_FAILED)
        try:
            if self.temp_dir:
                ensure_dir_exists(self.temp_dir)
            self.work_dir = tempfile.mkdtemp(prefix="lyricsync_", dir=self.temp_dir)
        except Exception as e:
            raise RenderError(f"Could not create encoder working directory: {e}", RenderKind.ENCODER_INIT_FAILED) from e
        logger.info(f"Encoder ready: {resolved} (working directory {self.work_dir})")

    def path_for(self, name: str) -> str:
        if not self.work_dir:
            raise RenderError("Encoder is not loaded.", RenderKind.ENCODER_INIT_FAILED)
        return os.path.join(self.work_dir, name)

    def stage(self, source_path: str, name: str) -> str:
        target = self.path_for(name)
        if not os.path.isfile(source_path):
            raise RenderError(f"Input file not found: {source_path}", RenderKind.ENCODE_FAILED)
        try:
            shutil.copyfile(source_path, target)
        except OSError as e:
            logger.error(f"Could not stage {source_path}: {e}", exc_info=True)
            raise RenderError(f"Could not stage {source_path}: {e}", RenderKind.ENCODE_FAILED) from e
        logger.debug(f"Staged {source_path} as {target}")
        return target

    def media_duration(self, path: str) -> Optional[float]:
        try:
            info = ffmpeg.probe(path, cmd=self.ffprobe_cmd)
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
            logger.warning(f"ffprobe could not read {path}: {stderr_output}")
            return None
        except OSError as e:
            logger.warning(f"ffprobe is not available ({e}); duration unknown.")
            return None
        duration = info.get("format", {}).get("duration")
        if duration is None:
            durations = [s.get("duration") for s in info.get("streams", []) if s.get("duration")]
            duration = max(durations, key=float) if durations else None
        return float(duration) if duration is not None else None

    def run(self, stream) -> None:
        logger.debug("ffmpeg command: %s", " ".join(self.describe(stream)))
        try:
            stream.run(cmd=self.ffmpeg_cmd, capture_stdout=True, capture_stderr=True, quiet=True)
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
            logger.error(f"ffmpeg error during encode. stderr: {stderr_output}")
            tail = "\n".join(stderr_output.strip().splitlines()[-5:])
            raise RenderError(f"ffmpeg failed: {tail}", RenderKind.ENCODE_FAILED) from e
        except OSError as e:
            logger.error(f"ffmpeg could not be executed: {e}", exc_info=True)
            raise RenderError(f"ffmpeg could not be executed: {e}", RenderKind.ENCODE_FAILED) from e

    def read(self, path: str) -> bytes:
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise RenderError(f"Encoded output could not be read: {e}", RenderKind.ENCODE_FAILED) from e

    def cleanup(self) -> None:
        if self.work_dir and os.path.isdir(self.work_dir):
            shutil.rmtree(self.work_dir, ignore_errors=True)
            logger.info(f"Cleaned up encoder working directory: {self.work_dir}")
        self.work_dir = None
