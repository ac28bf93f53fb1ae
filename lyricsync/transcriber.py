"""Handles Speech-to-Text transcription using Whisper."""

import whisper
import logging
import torch
import urllib.error
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import os

from .models import TranscriptionResult, Token
from .exceptions import (
    InitializationError,
    InitializationKind,
    TranscriptionError,
    TranscriptionKind,
)

logger = logging.getLogger(__name__)


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def tokens_from_whisper(result: Dict[str, Any]) -> TranscriptionResult:
    """
    Converts a raw Whisper result dict into a typed TranscriptionResult.

    Each segment contributes its word timings when it carries them, and one
    segment-wide token otherwise (Whisper leaves words empty for segments
    such as instrumental breaks). The result is word level when any segment
    had word timings. When there are no segments at all, only the flat text
    is kept and the tokens list is empty.
    """
    segments = result.get("segments") or []
    text = (result.get("text") or "").strip()
    language = result.get("language")

    tokens: List[Token] = []
    segment_tokens = 0
    for seg_data in segments:
        words = seg_data.get("words")
        if words:
            for word in words:
                word_text = str(word.get("word", "")).strip()
                if not word_text:
                    continue
                tokens.append(Token(word_text, _as_float(word.get("start")), _as_float(word.get("end"))))
        elif "text" in seg_data:
            seg_text = str(seg_data["text"]).strip()
            if not seg_text:
                continue
            tokens.append(Token(seg_text, _as_float(seg_data.get("start")), _as_float(seg_data.get("end"))))
            segment_tokens += 1
        else:
            logger.warning(f"Skipping incomplete segment data: {seg_data}")

    word_level = any(seg.get("words") for seg in segments)
    if segments and not word_level:
        logger.info("Whisper result carries no word timings; using segment-level tokens.")
    elif segment_tokens:
        logger.info(f"{segment_tokens} segment(s) carry no word timings; kept as segment-level tokens.")
    return TranscriptionResult(language=language, text=text, tokens=tokens, word_level=word_level)


class Transcriber(ABC):
    """Abstract base class for transcription services."""

    @abstractmethod
    def load(self) -> None:
        """
        Loads the underlying model. Blocking; the engine runs it off the event loop.

        Raises:
            InitializationError: If the model cannot be made ready.
        """

    @abstractmethod
    def transcribe(self, audio_path: str) -> TranscriptionResult:
        """
        Transcribes the given audio file.

        Args:
            audio_path: Path to the audio file.

        Returns:
            A TranscriptionResult with typed tokens.

        Raises:
            TranscriptionError: If transcription fails.
            FileNotFoundError: If the audio file doesn't exist.
        """


class WhisperTranscriber(Transcriber):
    """Implements transcription using OpenAI's Whisper model."""

    def __init__(self, model_name: str = "tiny.en", device: str = "cuda", fp16: bool = True, language: Optional[str] = "en"):
        """
        Initializes the WhisperTranscriber. The model itself is loaded by load().

        Args:
            model_name: The name of the Whisper model to use (e.g., "tiny.en", "medium.en").
            device: The device to run the model on ("cuda" or "cpu").
            fp16: Whether to use float16 precision (faster on compatible GPUs).
            language: Language to decode in, or None to let Whisper detect it.

        Raises:
            ValueError: If the specified device is invalid.
        """
        if device not in ["cuda", "cpu"]:
            raise ValueError(f"Invalid device specified: {device}. Choose 'cuda' or 'cpu'.")
        self.model_name = model_name
        self.device = device
        self.fp16 = fp16
        self.language = language
        self.model = None

        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA device requested but not available. Falling back to CPU.")
            self.device = "cpu"

    def _load_on(self, device: str):
        logger.info(f"Loading Whisper model '{self.model_name}' on device '{device}'")
        return whisper.load_model(self.model_name, device=device)

    def load(self) -> None:
        if self.model is not None:
            return
        try:
            try:
                self.model = self._load_on(self.device)
            except RuntimeError as e:
                if self.device == "cpu":
                    raise
                # A slower backend still works, so degrade quietly
                logger.warning(f"Loading on '{self.device}' failed ({e}). Falling back to CPU.")
                self.device = "cpu"
                self.model = self._load_on(self.device)
        except (urllib.error.URLError, ConnectionError) as e:
            logger.error(f"Failed to download Whisper model '{self.model_name}': {e}", exc_info=True)
            raise InitializationError(
                f"Could not download Whisper model '{self.model_name}': {e}",
                InitializationKind.NETWORK_FAILURE,
            ) from e
        except (RuntimeError, OSError) as e:
            logger.error(f"Failed to load Whisper model '{self.model_name}': {e}", exc_info=True)
            raise InitializationError(
                f"Failed to load Whisper model '{self.model_name}': {e}",
                InitializationKind.DEVICE_UNSUPPORTED,
            ) from e
        logger.info(f"Whisper model '{self.model_name}' loaded successfully on '{self.device}'.")

    def transcribe(self, audio_path: str) -> TranscriptionResult:
        """
        Transcribes the audio file using the loaded Whisper model.

        Word timestamps are always requested; whether lines keep them is the
        segmenter's decision.

        Raises:
            FileNotFoundError: If the audio file doesn't exist.
            TranscriptionError: If the model is not loaded or transcription fails.
        """
        logger.info(f"Starting transcription for: {audio_path}")
        if not os.path.exists(audio_path):
            raise FileNotFoundError(f"Audio file not found: {audio_path}")
        if self.model is None:
            raise TranscriptionError("Whisper model is not loaded; call load() first.", TranscriptionKind.UNKNOWN)

        try:
            result = self.model.transcribe(
                audio_path,
                language=self.language,
                fp16=self.fp16 if self.device == "cuda" else False,  # FP16 only works on CUDA
                word_timestamps=True,
                verbose=None,
            )
        except TypeError as e:
            # Releases before word timestamps reject the keyword
            logger.error(f"Whisper rejected word timestamps: {e}", exc_info=True)
            raise TranscriptionError(
                f"This Whisper build does not support word timestamps: {e}",
                TranscriptionKind.FEATURE_UNSUPPORTED,
            ) from e
        except Exception as e:
            logger.error(f"Error during Whisper transcription process for {audio_path}: {e}", exc_info=True)
            raise TranscriptionError(f"Whisper transcription failed for {audio_path}: {e}") from e

        transcription = tokens_from_whisper(result)
        transcription.original_audio_path = audio_path
        logger.info(
            f"Transcription completed. Language: {transcription.language or 'N/A'}, "
            f"{len(transcription.tokens)} tokens (word level: {transcription.word_level})."
        )
        return transcription
