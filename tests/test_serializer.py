"""Tests for LRC and structured JSON export/import."""

import json

import pytest

from lyricsync.exceptions import ValidationError, ValidationKind
from lyricsync.models import LyricLine, Word
from lyricsync.serializer import (
    LyricsMetadata,
    dumps_structured,
    loads_structured,
    parse_interchange_text,
    parse_structured,
    read_timeline_file,
    to_interchange_text,
    to_structured,
    write_interchange_file,
    write_structured_file,
)
from lyricsync.timeline import Timeline
from lyricsync.utils import format_time_lrc, parse_time_lrc, suggested_filename


def as_tuples(timeline):
    return [(l.id, l.text, l.start_time, l.end_time, l.words) for l in timeline]


@pytest.fixture
def rich_timeline() -> Timeline:
    return Timeline.from_lines([
        LyricLine(id="auto-0", text="Hello world", start_time=75.5, end_time=78.25,
                  words=(Word("Hello", 75.5, 76.0), Word("world", 76.1, 78.25))),
        LyricLine(id="m-1", text="It's: done", start_time=80.0, end_time=80.0),
        LyricLine(id="auto-1", text="overlap", start_time=80.0, end_time=82.125),
    ])


class TestTimeFormat:

    @pytest.mark.parametrize("seconds,expected", [
        (0, "00:00.00"),
        (5, "00:05.00"),
        (75.5, "01:15.50"),
        (59.999, "01:00.00"),
        (600.25, "10:00.25"),
        (-3, "00:00.00"),
    ])
    def test_format(self, seconds, expected):
        assert format_time_lrc(seconds) == expected

    def test_parse(self):
        assert parse_time_lrc("01:15.50") == pytest.approx(75.5)
        assert parse_time_lrc("02:03") == pytest.approx(123.0)
        assert parse_time_lrc("00:01.005") == pytest.approx(1.005)

    @pytest.mark.parametrize("stamp", ["ab:cd", "01:75.00", "1.5", ""])
    def test_parse_rejects_garbage(self, stamp):
        with pytest.raises(ValidationError) as excinfo:
            parse_time_lrc(stamp)
        assert excinfo.value.kind == ValidationKind.MALFORMED_TIMESTAMP


class TestInterchangeText:

    def test_entry_format(self):
        timeline = Timeline.from_lines([LyricLine(id="x", text="Hello world", start_time=75.5, end_time=77)])

        text = to_interchange_text(timeline)

        assert text.endswith("[01:15.50]Hello world\n")

    def test_two_verse_file(self, two_verse_timeline):
        text = to_interchange_text(two_verse_timeline, LyricsMetadata(title="Song", artist="Band"))
        lines = text.splitlines(keepends=True)

        assert lines[:4] == ["[ar:Band]\n", "[ti:Song]\n", "[al:Unknown Album]\n", "[by:LyricSync]\n"]
        assert lines[4] == "\n"
        assert lines[5:] == ["[00:00.00]verse one\n", "[00:05.00]verse two\n"]

    def test_empty_timeline_has_header_only(self):
        assert len(to_interchange_text(Timeline()).splitlines()) == 5

    def test_multiline_text_is_flattened(self):
        timeline = Timeline.from_lines([LyricLine(id="x", text="two\nrows", start_time=1, end_time=2)])

        assert "[00:01.00]two rows\n" in to_interchange_text(timeline)

    def test_parse_back(self, two_verse_timeline):
        parsed = parse_interchange_text(to_interchange_text(two_verse_timeline))

        assert [(l.text, l.start_time) for l in parsed] == [("verse one", 0.0), ("verse two", 5.0)]
        assert parsed.lines[0].end_time == 5.0
        assert parsed.lines[1].end_time == 8.0

    def test_parse_handles_repeated_stamps_and_end_markers(self):
        text = "[ti:x]\n[00:01.00][00:09.00]chorus\n[00:04.00]verse\n[00:06.00]\n"

        parsed = parse_interchange_text(text)

        assert [(l.text, l.start_time, l.end_time) for l in parsed] == [
            ("chorus", 1.0, 4.0),
            ("verse", 4.0, 6.0),
            ("chorus", 9.0, 12.0),
        ]

    def test_parse_rejects_bad_stamp(self):
        with pytest.raises(ValidationError):
            parse_interchange_text("[0x:1y]oops\n")

    def test_bracketed_lyric_text_round_trips(self):
        timeline = Timeline.from_lines([
            LyricLine(id="a", text="[Chorus] la la", start_time=1, end_time=4),
            LyricLine(id="b", text="[x] [00:02.00] still text", start_time=4, end_time=6),
        ])

        parsed = parse_interchange_text(to_interchange_text(timeline))

        assert [(l.text, l.start_time) for l in parsed] == [("[Chorus] la la", 1.0), ("[x] [00:02.00] still text", 4.0)]

    def test_section_marker_without_stamp_is_ignored(self):
        parsed = parse_interchange_text("[Chorus]\n[00:01.00]la la\n")

        assert [l.text for l in parsed] == ["la la"]


class TestStructured:

    def test_envelope(self, rich_timeline):
        doc = to_structured(rich_timeline, LyricsMetadata(title="T", artist="A"), created_at="2024-01-01T00:00:00+00:00")

        assert doc["version"] == "1.0"
        assert doc["metadata"] == {
            "title": "T", "artist": "A", "generator": "LyricSync", "createdAt": "2024-01-01T00:00:00+00:00",
        }
        assert doc["lyrics"][0]["words"][1] == {"text": "world", "startTime": 76.1, "endTime": 78.25}
        assert doc["lyrics"][1]["words"] == []

    def test_round_trip_is_lossless(self, rich_timeline):
        restored = parse_structured(to_structured(rich_timeline))

        assert as_tuples(restored) == as_tuples(rich_timeline)
        assert restored == rich_timeline

    def test_round_trip_through_json_text(self, rich_timeline):
        assert loads_structured(dumps_structured(rich_timeline)) == rich_timeline

    def test_round_trip_empty(self):
        assert len(parse_structured(to_structured(Timeline()))) == 0

    def test_round_trip_keeps_tie_order(self):
        timeline = Timeline()
        timeline.insert(LyricLine(id="z", text="first", start_time=1, end_time=2))
        timeline.insert(LyricLine(id="a", text="second", start_time=1, end_time=3))

        assert [l.id for l in parse_structured(to_structured(timeline))] == ["z", "a"]

    def test_accepts_legacy_word_key(self):
        doc = {"version": "1.0", "lyrics": [{
            "id": "x", "text": "hi", "startTime": 0, "endTime": 1,
            "words": [{"word": "hi", "startTime": 0, "endTime": 1}],
        }]}

        assert parse_structured(doc).lines[0].words[0].text == "hi"

    @pytest.mark.parametrize("doc", [
        {"version": "2.0", "lyrics": []},
        {"version": "1.0"},
        {"version": "1.0", "lyrics": [{"id": "x", "text": "t", "startTime": "soon", "endTime": 1}]},
        {"version": "1.0", "lyrics": [{"id": "x", "text": "t", "startTime": 3, "endTime": 1}]},
        {"version": "1.0", "lyrics": [{"id": "x", "text": "t", "endTime": 1}]},
        {"version": "1.0", "lyrics": ["oops"]},
        {"version": "1.0", "lyrics": [{"id": "x", "text": "t", "startTime": 0, "endTime": 1, "words": "x"}]},
        {"version": "1.0", "lyrics": [{"id": "x", "text": "t", "startTime": 0, "endTime": 1, "words": [1]}]},
        [],
    ])
    def test_rejects_malformed(self, doc):
        with pytest.raises(ValidationError):
            parse_structured(doc)

    def test_rejects_invalid_json(self):
        with pytest.raises(ValidationError):
            loads_structured("{not json")


class TestFiles:

    def test_write_and_read_json(self, tmp_path, rich_timeline):
        path = write_structured_file(rich_timeline, str(tmp_path / "song-lyrics.json"))

        assert json.loads((tmp_path / "song-lyrics.json").read_text(encoding="utf-8"))["version"] == "1.0"
        assert read_timeline_file(path) == rich_timeline

    def test_write_and_read_lrc(self, tmp_path, two_verse_timeline):
        path = write_interchange_file(two_verse_timeline, str(tmp_path / "song.lrc"))

        assert [l.text for l in read_timeline_file(path)] == ["verse one", "verse two"]

    def test_empty_export_is_rejected(self, tmp_path):
        with pytest.raises(ValidationError) as excinfo:
            write_interchange_file(Timeline(), str(tmp_path / "empty.lrc"))
        assert excinfo.value.kind == ValidationKind.EMPTY_EXPORT
        assert not (tmp_path / "empty.lrc").exists()

    def test_read_unknown_extension(self, tmp_path):
        path = tmp_path / "lyrics.txt"
        path.write_text("hi")
        with pytest.raises(ValueError):
            read_timeline_file(str(path))

    def test_read_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_timeline_file(str(tmp_path / "nope.json"))

    def test_suggested_filenames(self):
        assert suggested_filename("/music/My Song.mp3", "lrc") == "My Song.lrc"
        assert suggested_filename("/music/My Song.mp3", "json") == "My Song-lyrics.json"
        assert suggested_filename("/music/My Song.mp3", "video") == "karaoke-My Song.mp4"


def test_metadata_from_config_with_overrides():
    config = {"metadata": {"title": "Cfg Title", "artist": "Cfg Artist", "unknown": "ignored"}}

    metadata = LyricsMetadata.from_config(config, artist="CLI Artist", album=None)

    assert metadata == LyricsMetadata(title="Cfg Title", artist="CLI Artist")
