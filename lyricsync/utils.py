"""Utility functions for LyricSync."""

import os
import re
import logging
from .exceptions import FileSystemError, ValidationError, ValidationKind

logger = logging.getLogger(__name__)

_LRC_TIME = re.compile(r"^(\d{1,3}):(\d{1,2})(?:\.(\d{1,3}))?$")


def ensure_dir_exists(dir_path: str) -> None:
    """
    Creates dir_path (and parents) unless it is already a directory.

    Raises:
        FileSystemError: If the path is a file or cannot be created.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    if os.path.isdir(dir_path):
        return
    if os.path.exists(dir_path):
        raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    try:
        os.makedirs(dir_path, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create directory {dir_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not create directory {dir_path}: {e}") from e
    logger.info(f"Created directory: {dir_path}")


def format_time_lrc(seconds: float) -> str:
    """
    Formats seconds into LRC time format mm:ss.ff.

    Args:
        seconds: Time in seconds.

    Returns:
        Formatted time string, e.g. 75.5 -> "01:15.50".
    """
    if seconds < 0:
        seconds = 0.0
    # Work in whole centiseconds so 59.999 becomes 01:00.00, never 00:60.00
    centis = int(round(seconds * 100))
    mins, centis = divmod(centis, 6000)
    return f"{mins:02d}:{centis / 100:05.2f}"


def is_lrc_time(stamp: str) -> bool:
    """True when stamp is the body of a valid LRC time tag, e.g. '01:15.50'."""
    match = _LRC_TIME.match(stamp.strip())
    return bool(match) and int(match.group(2)) < 60


def parse_time_lrc(stamp: str) -> float:
    """
    Parses an LRC mm:ss.ff time tag body back into seconds.

    Raises:
        ValidationError: If the stamp is not a valid LRC time.
    """
    match = _LRC_TIME.match(stamp.strip())
    if not match:
        raise ValidationError(f"Malformed LRC timestamp: '{stamp}'", ValidationKind.MALFORMED_TIMESTAMP)
    mins, secs, frac = match.groups()
    if int(secs) >= 60:
        raise ValidationError(f"Seconds out of range in LRC timestamp: '{stamp}'", ValidationKind.MALFORMED_TIMESTAMP)
    fraction = int(frac) / (10 ** len(frac)) if frac else 0.0
    return int(mins) * 60 + int(secs) + fraction


def base_name(path: str) -> str:
    """Returns the file name of path without directory or extension."""
    return os.path.splitext(os.path.basename(path))[0]


def suggested_filename(source_path: str, kind: str) -> str:
    """
    Derives an output filename from the source audio's name.

    Args:
        source_path: The source audio path.
        kind: One of "lrc", "json" or "video".
    """
    stem = base_name(source_path) or "lyrics"
    if kind == "lrc":
        return f"{stem}.lrc"
    if kind == "json":
        return f"{stem}-lyrics.json"
    if kind == "video":
        return f"karaoke-{stem}.mp4"
    raise ValueError(f"Unknown output kind: {kind}")
