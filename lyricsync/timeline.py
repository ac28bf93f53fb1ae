"""The synchronized lyric timeline and its playback-clock queries."""

import dataclasses
import logging
import time
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from .models import LyricLine, Word
from .exceptions import ValidationError, ValidationKind

logger = logging.getLogger(__name__)

DEFAULT_MANUAL_DURATION = 3.0
_EDITABLE_FIELDS = {"text", "start_time", "end_time", "words"}


class Timeline:
    """
    An owned, always-sorted collection of LyricLines.

    Lines are ordered by start_time; lines starting together keep their
    insertion order. Overlapping lines are allowed, and every point query
    resolves them by taking the first line in that order.

    Not safe for concurrent writers; the owning session serialises edits.
    """

    def __init__(self):
        self._entries: List[Tuple[int, LyricLine]] = []
        self._sequence = 0
        self._used_ids: Set[str] = set()

    @classmethod
    def from_lines(cls, lines: Iterable[LyricLine]) -> "Timeline":
        timeline = cls()
        for line in lines:
            timeline.insert(line)
        return timeline

    # --- Reads -------------------------------------------------------------

    @property
    def lines(self) -> Tuple[LyricLine, ...]:
        return tuple(line for _, line in self._entries)

    @property
    def duration(self) -> float:
        return max((line.end_time for _, line in self._entries), default=0.0)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LyricLine]:
        return iter(self.lines)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Timeline):
            return NotImplemented
        return self.lines == other.lines

    def __repr__(self) -> str:
        return f"Timeline({len(self)} lines)"

    def get(self, line_id: str) -> Optional[LyricLine]:
        index = self._index_of(line_id)
        return None if index is None else self._entries[index][1]

    def _index_of(self, line_id: str) -> Optional[int]:
        for index, (_, line) in enumerate(self._entries):
            if line.id == line_id:
                return index
        return None

    def _active_index(self, t: float) -> Optional[int]:
        for index, (_, line) in enumerate(self._entries):
            if line.contains(t):
                return index
        return None

    # --- Mutation ----------------------------------------------------------

    def _resort(self) -> None:
        # Insertion sequence breaks ties, so the sort stays stable across edits
        self._entries.sort(key=lambda entry: (entry[1].start_time, entry[0]))

    def insert(self, line: LyricLine) -> LyricLine:
        """
        Adds a line and re-establishes sort order.

        Raises:
            ValidationError: If the id is in use or was used by a deleted line.
        """
        if line.id in self._used_ids:
            raise ValidationError(f"Line id '{line.id}' has already been used in this timeline.")
        self._used_ids.add(line.id)
        self._entries.append((self._sequence, line))
        self._sequence += 1
        self._resort()
        logger.debug(f"Inserted line '{line.id}' [{line.start_time:.2f}, {line.end_time:.2f}]")
        return line

    def update(self, line_id: str, **fields) -> Optional[LyricLine]:
        """
        Replaces fields of a line. Unknown ids are ignored.

        Returns:
            The updated line, or None when the id is unknown.

        Raises:
            ValueError: For fields that cannot be edited (including id).
            ValidationError: If the edit would leave start_time > end_time.
        """
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update line field(s): {', '.join(sorted(unknown))}")
        index = self._index_of(line_id)
        if index is None:
            logger.debug(f"Update ignored for unknown line id '{line_id}'")
            return None
        if "words" in fields and fields["words"] is not None:
            fields["words"] = tuple(fields["words"])
        sequence, line = self._entries[index]
        updated = dataclasses.replace(line, **fields)
        self._entries[index] = (sequence, updated)
        self._resort()
        return updated

    def delete(self, line_id: str) -> Optional[LyricLine]:
        """Removes a line. Unknown ids are ignored. The id is never reissued."""
        index = self._index_of(line_id)
        if index is None:
            logger.debug(f"Delete ignored for unknown line id '{line_id}'")
            return None
        _, line = self._entries.pop(index)
        return line

    def new_manual_id(self) -> str:
        """A timestamp-derived id that has never been used in this timeline."""
        stamp = int(time.time() * 1000)
        candidate = f"manual-{stamp}"
        while candidate in self._used_ids:
            stamp += 1
            candidate = f"manual-{stamp}"
        return candidate

    def add_manual_line(self, text: str, at: float, duration: float = DEFAULT_MANUAL_DURATION,
                        line_id: Optional[str] = None) -> LyricLine:
        """Inserts a hand-entered line spanning [at, at + duration]."""
        if not text.strip():
            raise ValueError("Manual lines need some text.")
        line = LyricLine(
            id=line_id or self.new_manual_id(),
            text=text.strip(),
            start_time=at,
            end_time=at + duration,
        )
        return self.insert(line)

    def mark_start(self, line_id: str, t: float) -> Optional[LyricLine]:
        """Sets a line's start to the current playback position."""
        return self.update(line_id, start_time=t)

    def mark_end(self, line_id: str, t: float) -> Optional[LyricLine]:
        """Sets a line's end to the current playback position."""
        return self.update(line_id, end_time=t)

    # --- Playback queries --------------------------------------------------

    def query_active(self, t: float) -> Optional[LyricLine]:
        """The first line in sort order with start_time <= t <= end_time."""
        index = self._active_index(t)
        return None if index is None else self._entries[index][1]

    def query_upcoming(self, t: float, n: int = 3) -> List[LyricLine]:
        """
        Lines after the active one, or the next lines starting after t when
        nothing is active.
        """
        if n <= 0:
            return []
        lines = self.lines
        index = self._active_index(t)
        if index is not None:
            return list(lines[index + 1:index + 1 + n])
        for position, line in enumerate(lines):
            if line.start_time > t:
                return list(lines[position:position + n])
        return []

    def query_previous(self, t: float, n: int = 3) -> List[LyricLine]:
        """
        Lines before the active one, or the n lines that ended most recently
        before t when nothing is active. Always returned in chronological order.
        """
        if n <= 0:
            return []
        lines = self.lines
        index = self._active_index(t)
        if index is not None:
            return list(lines[max(0, index - n):index])
        finished = [line for line in lines if line.end_time < t]
        nearest = {line.id for line in sorted(finished, key=lambda line: line.end_time, reverse=True)[:n]}
        return [line for line in lines if line.id in nearest]

    @staticmethod
    def active_word(line: LyricLine, t: float) -> Optional[Word]:
        """The word being sung at t, or None (including when the line has no word timing)."""
        if not line.words:
            return None
        for word in line.words:
            if word.start_time <= t <= word.end_time:
                return word
        return None
