"""The lyrics engine: owns the recognizer lifecycle and turns audio into a Timeline."""

import logging
import time
from typing import Optional

from .exceptions import (
    InitializationError,
    InitializationKind,
    LyricSyncError,
    TranscriptionError,
    TranscriptionKind,
)
from .models import Outcome
from .segmenter import TranscriptSegmenter
from .tasks import LoadGuard, SingleFlight, run_blocking
from .timeline import Timeline
from .transcriber import Transcriber, WhisperTranscriber

logger = logging.getLogger(__name__)


class LyricsEngine:
    """
    Explicit engine object around a Transcriber.

    Carries its own ready/loading state instead of relying on a module-level
    model. One transcription may be in flight per instance; callers needing
    parallel transcriptions create separate engines.
    """

    def __init__(
        self,
        transcriber: Transcriber,
        segmenter: Optional[TranscriptSegmenter] = None,
        load_timeout: Optional[float] = 60.0,
        transcribe_timeout: Optional[float] = 600.0,
    ):
        self.transcriber = transcriber
        self.segmenter = segmenter or TranscriptSegmenter()
        self.transcribe_timeout = transcribe_timeout
        self._ready = LoadGuard(
            "speech recognizer",
            timeout=load_timeout,
            on_timeout=lambda: InitializationError(
                f"Speech recognizer did not load within {load_timeout}s", InitializationKind.TIMEOUT),
        )
        self._transcription_flight = SingleFlight("transcription")

    @classmethod
    def from_config(cls, config: dict) -> "LyricsEngine":
        """Builds an engine with a WhisperTranscriber configured from the loaded config."""
        device = config.get("device", "cuda")
        transcriber = WhisperTranscriber(
            model_name=config.get("whisper_model", "tiny.en"),
            device=device,
            fp16=config.get("whisper_fp16", True) if device == "cuda" else False,
            language=config.get("language", "en"),
        )
        return cls(
            transcriber=transcriber,
            segmenter=TranscriptSegmenter(fallback_duration=config.get("fallback_duration_seconds", 120.0)),
            load_timeout=config.get("load_timeout_seconds"),
            transcribe_timeout=config.get("transcribe_timeout_seconds"),
        )

    @property
    def is_loaded(self) -> bool:
        return self._ready.is_loaded

    @property
    def is_loading(self) -> bool:
        return self._ready.is_loading

    async def ensure_ready(self) -> Outcome[None]:
        """Loads the recognizer at most once. Concurrent callers share one load."""
        try:
            await self._ready.ensure(self.transcriber.load)
        except LyricSyncError as e:
            return Outcome.failure(e)
        return Outcome.success(None)

    async def _generate(self, audio_path: str, word_level: bool) -> Timeline:
        ready = await self.ensure_ready()
        ready.unwrap()

        result = await run_blocking(
            self.transcriber.transcribe,
            audio_path,
            timeout=self.transcribe_timeout,
            on_timeout=lambda: TranscriptionError(
                f"Transcription did not finish within {self.transcribe_timeout}s", TranscriptionKind.TIMEOUT),
            on_abandon=self._transcription_flight.abandon,
        )
        lines = self.segmenter.segment_result(result, word_level=word_level)
        if not lines and (result.tokens or result.text.strip()):
            raise TranscriptionError("Recognizer output produced no lyric lines.", TranscriptionKind.UNKNOWN)
        return Timeline.from_lines(lines)

    async def generate(self, audio_path: str, word_level: bool = False) -> Outcome[Timeline]:
        """
        Transcribes audio and segments it into a Timeline.

        Returns an Outcome rather than raising: on failure its kind is one of
        the InitializationError/TranscriptionError kinds (or "busy"), and the
        caller may fall back to manual line entry.
        """
        started = time.time()
        logger.info(f"--- Generating lyrics for: {audio_path} (word level: {word_level}) ---")
        try:
            with self._transcription_flight:
                timeline = await self._generate(audio_path, word_level)
        except LyricSyncError as e:
            logger.error(f"Lyrics generation failed ({e.kind}): {e}")
            return Outcome.failure(e)
        except FileNotFoundError as e:
            logger.error(f"Lyrics generation failed: {e}")
            return Outcome.failure(TranscriptionError(str(e), TranscriptionKind.UNKNOWN))
        except Exception as e:
            logger.critical(f"An unexpected error occurred during lyrics generation: {e}", exc_info=True)
            return Outcome.failure(TranscriptionError(f"An unexpected error occurred: {e}", TranscriptionKind.UNKNOWN))
        logger.info(f"--- Generated {len(timeline)} lines in {time.time() - started:.2f} seconds ---")
        return Outcome.success(timeline)
