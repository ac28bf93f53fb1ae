"""Groups recognizer tokens into display lines."""

import logging
import math
import re
from typing import Iterable, List, Optional, Sequence

from .models import LyricLine, Token, TranscriptionResult, Word
from .exceptions import TranscriptionError, TranscriptionKind

logger = logging.getLogger(__name__)

MAX_WORDS_PER_LINE = 8
DEFAULT_FALLBACK_DURATION = 120.0
FALLBACK_CHUNK_SECONDS = 3
MIN_FALLBACK_CHUNK = 5
MISSING_END_SECONDS = 3.0

_SENTENCE_END = re.compile(r"[.!?][\"')\]]*$")


def ends_sentence(text: str) -> bool:
    return bool(_SENTENCE_END.search(text.strip()))


class _PendingLine:
    """The line currently being accumulated."""

    def __init__(self):
        self.texts: List[str] = []
        self.words: List[Word] = []
        self.start_time: Optional[float] = None

    def append(self, token: Token, word_level: bool) -> None:
        if not self.texts:
            self.start_time = token.start_time
        self.texts.append(token.text)
        if word_level:
            self.words.append(Word(token.text, token.start_time, token.end_time))

    def __len__(self) -> int:
        return len(self.texts)


class TranscriptSegmenter:
    """
    Converts a token stream (or a flat transcript) into ordered LyricLines.

    A line ends after MAX_WORDS_PER_LINE tokens, after a token ending in
    sentence punctuation, or at the end of the stream.
    """

    def __init__(self, max_words: int = MAX_WORDS_PER_LINE, fallback_duration: float = DEFAULT_FALLBACK_DURATION):
        if max_words < 1:
            raise ValueError("max_words must be at least 1")
        if fallback_duration <= 0:
            raise ValueError("fallback_duration must be positive")
        self.max_words = max_words
        self.fallback_duration = fallback_duration

    def _normalise(self, tokens: Iterable[Token]) -> List[Token]:
        """Drops blank tokens and fills in missing timestamps from their neighbours."""
        clean: List[Token] = []
        previous_end = 0.0
        for token in tokens:
            text = (token.text or "").strip()
            if not text:
                continue
            start = token.start_time if token.start_time is not None else previous_end
            start = max(0.0, start)
            end = token.end_time if token.end_time is not None else start + MISSING_END_SECONDS
            # Recognizers occasionally emit end < start at chunk seams
            end = max(start, end)
            clean.append(Token(text, start, end))
            previous_end = end
        return clean

    def segment(self, tokens: Sequence[Token], word_level: bool = False) -> List[LyricLine]:
        """
        Groups timestamped tokens into lines.

        Args:
            tokens: Ordered recognizer tokens.
            word_level: Whether to attach per-word timing to each line.

        Returns:
            Lines in stream order with ids auto-0, auto-1, ...
        """
        stream = self._normalise(tokens)
        lines: List[LyricLine] = []
        pending = _PendingLine()

        for position, token in enumerate(stream):
            pending.append(token, word_level)
            is_last = position == len(stream) - 1
            if len(pending) >= self.max_words or ends_sentence(token.text) or is_last:
                text = " ".join(pending.texts).strip()
                if text:
                    lines.append(LyricLine(
                        id=f"auto-{len(lines)}",
                        text=text,
                        start_time=pending.start_time,
                        end_time=token.end_time,
                        words=tuple(pending.words) if word_level else None,
                    ))
                pending = _PendingLine()

        logger.info(f"Segmented {len(stream)} tokens into {len(lines)} lines.")
        return lines

    def segment_flat(self, text: str, word_level: bool = False, assumed_duration: Optional[float] = None) -> List[LyricLine]:
        """
        Fallback for transcripts without timestamps: fixed-size chunks on a synthetic clock.

        The whole transcript is assumed to last assumed_duration seconds
        (fallback_duration by default), and chunks target about three seconds.
        """
        words = (text or "").split()
        if not words:
            return []
        duration = assumed_duration or self.fallback_duration
        rate = len(words) / duration
        chunk_size = max(MIN_FALLBACK_CHUNK, math.floor(rate * FALLBACK_CHUNK_SECONDS))

        lines: List[LyricLine] = []
        clock = 0.0
        for offset in range(0, len(words), chunk_size):
            chunk = words[offset:offset + chunk_size]
            span = len(chunk) / rate
            line_words = None
            if word_level:
                step = span / len(chunk)
                line_words = tuple(
                    Word(word, clock + i * step, clock + (i + 1) * step)
                    for i, word in enumerate(chunk)
                )
            lines.append(LyricLine(
                id=f"auto-{len(lines)}",
                text=" ".join(chunk),
                start_time=clock,
                end_time=clock + span,
                words=line_words,
            ))
            clock += span

        logger.info(
            f"Fallback segmentation: {len(words)} words, chunk size {chunk_size}, {len(lines)} lines "
            f"over an assumed {duration:.0f}s."
        )
        return lines

    def segment_result(self, result: TranscriptionResult, word_level: bool = False) -> List[LyricLine]:
        """
        Segments a recognizer result, picking timed or fallback mode.

        Raises:
            TranscriptionError: FEATURE_UNSUPPORTED when word timing is requested
                                but the recognizer only produced segment timing.
        """
        timed = any(token.has_timestamp for token in result.tokens)
        if timed:
            if word_level and not result.word_level:
                raise TranscriptionError(
                    "Word-level timestamps were requested but the recognizer returned only segment timing.",
                    TranscriptionKind.FEATURE_UNSUPPORTED,
                )
            return self.segment(result.tokens, word_level)

        text = result.text or " ".join(token.text for token in result.tokens)
        logger.warning("Recognizer returned no timestamps; using fallback segmentation.")
        return self.segment_flat(text, word_level)
