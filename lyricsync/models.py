"""Data models for LyricSync."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

from .exceptions import LyricSyncError, ValidationError, ValidationKind

RESOLUTIONS: Dict[str, Tuple[int, int]] = {
    "720p": (1280, 720),
    "1080p": (1920, 1080),
}
FONT_FAMILIES = ("Arial", "Times", "Helvetica", "Georgia")
MIN_FONT_SIZE = 24
MAX_FONT_SIZE = 96

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")
_NAMED_COLOR = re.compile(r"^[A-Za-z]+$")


def _check_span(start_time: float, end_time: float, what: str) -> None:
    if start_time is None or end_time is None:
        raise ValidationError(f"{what} is missing a timestamp", ValidationKind.MALFORMED_TIMESTAMP)
    if start_time < 0:
        raise ValidationError(f"{what} starts before 0 ({start_time})", ValidationKind.MALFORMED_TIMESTAMP)
    if end_time < start_time:
        raise ValidationError(
            f"{what} ends before it starts ({start_time} > {end_time})",
            ValidationKind.MALFORMED_TIMESTAMP,
        )


@dataclass(frozen=True)
class Word:
    """One recognized token's audible span."""
    text: str
    start_time: float
    end_time: float

    def __post_init__(self):
        _check_span(self.start_time, self.end_time, f"Word '{self.text}'")


@dataclass(frozen=True)
class LyricLine:
    """One display unit of lyrics with a time span and optional word timing."""
    id: str
    text: str
    start_time: float
    end_time: float
    words: Optional[Tuple[Word, ...]] = None

    def __post_init__(self):
        _check_span(self.start_time, self.end_time, f"Line '{self.id}'")
        if self.words is not None:
            words = tuple(sorted(self.words, key=lambda w: w.start_time))
            # Frozen dataclass, so bypass __setattr__ for normalisation
            object.__setattr__(self, "words", words or None)

    def contains(self, t: float) -> bool:
        return self.start_time <= t <= self.end_time


@dataclass(frozen=True)
class Token:
    """A recognizer token at the segmenter boundary. Timestamps are None when unknown."""
    text: str
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @property
    def has_timestamp(self) -> bool:
        return self.start_time is not None


@dataclass
class TranscriptionResult:
    """Holds the structured output from the ASR process."""
    language: Optional[str]
    text: str = ""
    tokens: List[Token] = field(default_factory=list)
    word_level: bool = False
    original_audio_path: Optional[str] = None


@dataclass
class OverlayStyle:
    """Caller-supplied styling for the burned-in lyric overlay."""
    background_color: str = "#000000"
    background_image: Optional[str] = None
    text_color: str = "#ffffff"
    font_size: int = 48
    font_family: str = "Arial"
    shadow_enabled: bool = True
    resolution: str = "1080p"

    def __post_init__(self):
        if self.resolution not in RESOLUTIONS:
            raise ValueError(f"Unsupported resolution '{self.resolution}'. Choose one of {sorted(RESOLUTIONS)}.")
        if not MIN_FONT_SIZE <= int(self.font_size) <= MAX_FONT_SIZE:
            raise ValueError(f"Font size {self.font_size} outside [{MIN_FONT_SIZE}, {MAX_FONT_SIZE}].")
        if self.font_family not in FONT_FAMILIES:
            raise ValueError(f"Unsupported font family '{self.font_family}'. Choose one of {FONT_FAMILIES}.")
        for name in ("background_color", "text_color"):
            value = getattr(self, name)
            if not (_HEX_COLOR.match(value) or _NAMED_COLOR.match(value)):
                raise ValueError(f"Invalid color for {name}: '{value}'")


@dataclass(frozen=True)
class RenderArtifact:
    """Encoded video bytes plus a suggested filename."""
    data: bytes
    filename: str
    mime_type: str = "video/mp4"


T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    """Either a successful value or a typed LyricSyncError."""
    value: Optional[T] = None
    error: Optional[LyricSyncError] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: LyricSyncError) -> "Outcome[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> str:
        return "ok" if self.error is None else self.error.kind

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value

    def describe(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": str(self.error) if self.error else None}
