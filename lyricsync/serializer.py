"""Handles LRC and structured JSON export/import of lyric timelines."""

import json
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .models import LyricLine, Word
from .timeline import Timeline
from .exceptions import FileSystemError, ValidationError, ValidationKind
from .utils import format_time_lrc, is_lrc_time, parse_time_lrc

logger = logging.getLogger(__name__)

STRUCTURED_VERSION = "1.0"
LRC_LAST_LINE_SECONDS = 3.0

_LRC_HEADER = re.compile(r"^\[([a-zA-Z#]+):(.*)\]$")
_LRC_STAMP = re.compile(r"\[([^\]]*)\]")


@dataclass
class LyricsMetadata:
    """Header information written alongside the lyrics."""
    title: str = "Unknown Title"
    artist: str = "Unknown Artist"
    album: str = "Unknown Album"
    generator: str = "LyricSync"

    @classmethod
    def from_config(cls, config: Optional[dict], **overrides) -> "LyricsMetadata":
        values = dict((config or {}).get("metadata") or {})
        values.update({k: v for k, v in overrides.items() if v is not None})
        known = {k: str(v) for k, v in values.items() if k in cls.__dataclass_fields__}
        return cls(**known)


# --- Interchange text (LRC) -----------------------------------------------

def _header_value(value: str) -> str:
    # Newlines or closing brackets would break the tag
    return " ".join(value.split()).replace("]", ")")


def to_interchange_text(timeline: Timeline, metadata: Optional[LyricsMetadata] = None) -> str:
    """
    Renders the timeline as LRC: four header tags, a blank line, then one
    "[mm:ss.ff]text" entry per line. Lossy: ids, word timing and end times are dropped.
    """
    metadata = metadata or LyricsMetadata()
    out = [
        f"[ar:{_header_value(metadata.artist)}]\n",
        f"[ti:{_header_value(metadata.title)}]\n",
        f"[al:{_header_value(metadata.album)}]\n",
        f"[by:{_header_value(metadata.generator)}]\n",
        "\n",
    ]
    for line in timeline:
        text = " ".join(line.text.split())
        out.append(f"[{format_time_lrc(line.start_time)}]{text}\n")
    return "".join(out)


def _leading_stamps(raw: str) -> Tuple[List[float], str]:
    """
    Splits the leading time tags off an LRC line.

    A first tag that starts with a digit must be a valid time. Later tags are
    taken only while they are valid times, so bracketed lyric text such as
    '[Chorus]' after the stamps stays part of the line.
    """
    stamps: List[float] = []
    rest = raw
    while True:
        match = _LRC_STAMP.match(rest)
        if not match:
            break
        body = match.group(1)
        if not stamps:
            if not body.strip()[:1].isdigit():
                break
            stamps.append(parse_time_lrc(body))
        elif is_lrc_time(body):
            stamps.append(parse_time_lrc(body))
        else:
            break
        rest = rest[match.end():]
    return stamps, rest


def parse_interchange_text(text: str) -> Timeline:
    """
    Parses LRC text into a Timeline.

    Header tags are skipped. Each line ends where the next entry begins;
    entries with empty text only mark the end of the previous line. The final
    line lasts LRC_LAST_LINE_SECONDS.

    Raises:
        ValidationError: For malformed timestamps.
    """
    entries: List[Tuple[float, str]] = []
    for raw in text.splitlines():
        raw = raw.strip()
        if not raw or _LRC_HEADER.match(raw):
            continue
        stamps, rest = _leading_stamps(raw)
        if not stamps:
            logger.debug(f"Ignoring LRC line without a timestamp: {raw!r}")
            continue
        for stamp in stamps:
            entries.append((stamp, rest.strip()))

    entries.sort(key=lambda entry: entry[0])
    timeline = Timeline()
    for position, (start, line_text) in enumerate(entries):
        if not line_text:
            continue
        if position + 1 < len(entries):
            end = entries[position + 1][0]
        else:
            end = start + LRC_LAST_LINE_SECONDS
        timeline.insert(LyricLine(id=f"lrc-{len(timeline)}", text=line_text, start_time=start, end_time=end))
    logger.info(f"Parsed {len(timeline)} lines from LRC text.")
    return timeline


# --- Structured document (JSON) -------------------------------------------

def _word_to_dict(word: Word) -> Dict[str, Any]:
    return {"text": word.text, "startTime": word.start_time, "endTime": word.end_time}


def to_structured(timeline: Timeline, metadata: Optional[LyricsMetadata] = None,
                  created_at: Optional[str] = None) -> Dict[str, Any]:
    """Builds the versioned, lossless document for a timeline."""
    metadata = metadata or LyricsMetadata()
    return {
        "version": STRUCTURED_VERSION,
        "metadata": {
            "title": metadata.title,
            "artist": metadata.artist,
            "generator": metadata.generator,
            "createdAt": created_at or datetime.now(timezone.utc).isoformat(),
        },
        "lyrics": [
            {
                "id": line.id,
                "text": line.text,
                "startTime": line.start_time,
                "endTime": line.end_time,
                "words": [_word_to_dict(word) for word in line.words or ()],
            }
            for line in timeline
        ],
    }


def _require(entry: Dict[str, Any], key: str, where: str) -> Any:
    if key not in entry:
        raise ValidationError(f"{where} is missing '{key}'", ValidationKind.MALFORMED_TIMESTAMP)
    return entry[key]


def _number(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{where} must be a number, got {value!r}", ValidationKind.MALFORMED_TIMESTAMP)
    return float(value)


def parse_structured(document: Dict[str, Any]) -> Timeline:
    """
    Rebuilds a Timeline from a structured document.

    Raises:
        ValidationError: If the document shape or any timestamp is invalid.
    """
    if not isinstance(document, dict):
        raise ValidationError("Structured lyrics must be a JSON object.", ValidationKind.MALFORMED_TIMESTAMP)
    version = document.get("version")
    if version != STRUCTURED_VERSION:
        raise ValidationError(f"Unsupported structured lyrics version: {version!r}", ValidationKind.MALFORMED_TIMESTAMP)
    lyrics = document.get("lyrics")
    if not isinstance(lyrics, list):
        raise ValidationError("Structured lyrics document has no 'lyrics' list.", ValidationKind.MALFORMED_TIMESTAMP)

    timeline = Timeline()
    for position, entry in enumerate(lyrics):
        where = f"lyrics[{position}]"
        if not isinstance(entry, dict):
            raise ValidationError(f"{where} must be an object", ValidationKind.MALFORMED_TIMESTAMP)
        raw_words = entry.get("words") or []
        if not isinstance(raw_words, list):
            raise ValidationError(f"{where}.words must be a list", ValidationKind.MALFORMED_TIMESTAMP)
        words = []
        for word_pos, word in enumerate(raw_words):
            word_where = f"{where}.words[{word_pos}]"
            if not isinstance(word, dict):
                raise ValidationError(f"{word_where} must be an object", ValidationKind.MALFORMED_TIMESTAMP)
            # Older exports used "word" for the token text
            word_text = word.get("text", word.get("word"))
            if word_text is None:
                raise ValidationError(f"{word_where} is missing 'text'", ValidationKind.MALFORMED_TIMESTAMP)
            words.append(Word(
                str(word_text),
                _number(_require(word, "startTime", word_where), f"{word_where}.startTime"),
                _number(_require(word, "endTime", word_where), f"{word_where}.endTime"),
            ))
        timeline.insert(LyricLine(
            id=str(_require(entry, "id", where)),
            text=str(_require(entry, "text", where)),
            start_time=_number(_require(entry, "startTime", where), f"{where}.startTime"),
            end_time=_number(_require(entry, "endTime", where), f"{where}.endTime"),
            words=tuple(words) or None,
        ))
    return timeline


def dumps_structured(timeline: Timeline, metadata: Optional[LyricsMetadata] = None) -> str:
    return json.dumps(to_structured(timeline, metadata), indent=2, ensure_ascii=False)


def loads_structured(text: str) -> Timeline:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Structured lyrics are not valid JSON: {e}", ValidationKind.MALFORMED_TIMESTAMP) from e
    return parse_structured(document)


# --- Files -----------------------------------------------------------------

def _write(path: str, content: str) -> str:
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    except IOError as e:
        logger.error(f"Failed to write lyrics file {path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not write {path}: {e}") from e
    return path


def _require_lines(timeline: Timeline) -> None:
    if len(timeline) == 0:
        raise ValidationError("There are no lyric lines to export.", ValidationKind.EMPTY_EXPORT)


def write_interchange_file(timeline: Timeline, path: str, metadata: Optional[LyricsMetadata] = None) -> str:
    _require_lines(timeline)
    _write(path, to_interchange_text(timeline, metadata))
    logger.info(f"Wrote {len(timeline)} LRC entries to {path}")
    return path


def write_structured_file(timeline: Timeline, path: str, metadata: Optional[LyricsMetadata] = None) -> str:
    _require_lines(timeline)
    _write(path, dumps_structured(timeline, metadata) + "\n")
    logger.info(f"Wrote {len(timeline)} structured lyric lines to {path}")
    return path


def read_timeline_file(path: str) -> Timeline:
    """
    Loads a timeline from a .json or .lrc file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: For unsupported extensions.
        ValidationError: For malformed content.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Lyrics file not found: {path}")
    ext = os.path.splitext(path)[1].lower()
    if ext not in (".json", ".lrc"):
        raise ValueError(f"Unsupported lyrics file type '{ext}'. Use .json or .lrc.")
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise FileSystemError(f"Could not read {path}: {e}") from e
    return loads_structured(content) if ext == ".json" else parse_interchange_text(content)
