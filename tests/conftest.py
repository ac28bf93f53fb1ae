"""Shared fixtures for the LyricSync tests."""

from typing import List, Optional

import pytest

from lyricsync.models import LyricLine, Token
from lyricsync.timeline import Timeline


@pytest.fixture
def make_line():
    def factory(line_id: str, start: float, end: float, text: Optional[str] = None) -> LyricLine:
        return LyricLine(id=line_id, text=text or f"line {line_id}", start_time=start, end_time=end)
    return factory


@pytest.fixture
def two_verse_timeline() -> Timeline:
    timeline = Timeline()
    timeline.add_manual_line("verse one", at=0.0, duration=3.0, line_id="m-1")
    timeline.add_manual_line("verse two", at=5.0, duration=3.0, line_id="m-2")
    return timeline


@pytest.fixture
def audio_file(tmp_path) -> str:
    path = tmp_path / "my song.mp3"
    path.write_bytes(b"ID3fake-audio")
    return str(path)


@pytest.fixture
def word_tokens() -> List[Token]:
    words = ["Hello", "there", "my", "friend.", "How", "are", "you?"]
    return [Token(word, i * 0.5, i * 0.5 + 0.4) for i, word in enumerate(words)]
