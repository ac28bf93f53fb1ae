"""Tests for grouping recognizer tokens into lines."""

import pytest

from lyricsync.exceptions import TranscriptionError, TranscriptionKind
from lyricsync.models import Token, TranscriptionResult
from lyricsync.segmenter import TranscriptSegmenter, ends_sentence


@pytest.fixture
def segmenter() -> TranscriptSegmenter:
    return TranscriptSegmenter()


class TestSegment:
    """Timed token grouping."""

    def test_twenty_tokens_without_punctuation_split_eight_eight_four(self, segmenter):
        tokens = [Token(chr(ord("a") + i), float(i), float(i) + 0.5) for i in range(20)]

        lines = segmenter.segment(tokens)

        assert [len(line.text.split()) for line in lines] == [8, 8, 4]
        assert [line.id for line in lines] == ["auto-0", "auto-1", "auto-2"]

    def test_line_spans_first_start_to_last_end(self, segmenter):
        tokens = [Token(chr(ord("a") + i), float(i), float(i) + 0.5) for i in range(20)]

        lines = segmenter.segment(tokens)

        assert (lines[0].start_time, lines[0].end_time) == (0.0, 7.5)
        assert (lines[2].start_time, lines[2].end_time) == (16.0, 19.5)

    def test_sentence_punctuation_ends_line(self, segmenter, word_tokens):
        lines = segmenter.segment(word_tokens)

        assert [line.text for line in lines] == ["Hello there my friend.", "How are you?"]
        assert lines[1].start_time == pytest.approx(2.0)

    def test_word_level_attaches_words(self, segmenter, word_tokens):
        lines = segmenter.segment(word_tokens, word_level=True)

        assert [w.text for w in lines[0].words] == ["Hello", "there", "my", "friend."]
        assert lines[0].words[1].start_time == pytest.approx(0.5)

    def test_without_word_level_words_are_absent(self, segmenter, word_tokens):
        lines = segmenter.segment(word_tokens, word_level=False)

        assert all(line.words is None for line in lines)

    def test_blank_tokens_are_dropped_and_do_not_consume_ids(self, segmenter):
        tokens = [Token("  ", 0.0, 0.1), Token("Hi.", 0.2, 0.4), Token("", 0.5, 0.6), Token("Bye", 1.0, 1.2)]

        lines = segmenter.segment(tokens)

        assert [(line.id, line.text) for line in lines] == [("auto-0", "Hi."), ("auto-1", "Bye")]

    def test_empty_stream_gives_no_lines(self, segmenter):
        assert segmenter.segment([]) == []

    def test_missing_end_gets_default_span(self, segmenter):
        lines = segmenter.segment([Token("Solo", 4.0, None)])

        assert lines[0].end_time == pytest.approx(7.0)

    def test_reversed_token_span_is_clamped(self, segmenter):
        lines = segmenter.segment([Token("odd", 2.0, 1.5)], word_level=True)

        assert lines[0].start_time == lines[0].end_time == 2.0

    def test_every_line_and_word_is_well_ordered(self, segmenter):
        tokens = [Token(f"w{i}", i * 0.3, i * 0.3 + 0.2) for i in range(37)]

        for line in segmenter.segment(tokens, word_level=True):
            assert line.start_time <= line.end_time
            for word in line.words:
                assert word.start_time <= word.end_time

    @pytest.mark.parametrize("text,expected", [
        ("done.", True), ("what?", True), ("wow!", True), ('"stop."', True),
        ("comma,", False), ("plain", False), ("e.g", False),
    ])
    def test_ends_sentence(self, text, expected):
        assert ends_sentence(text) is expected


class TestSegmentFlat:
    """Fallback chunking for transcripts without timestamps."""

    def test_hundred_words_make_twenty_lines(self, segmenter):
        text = " ".join(f"word{i}" for i in range(100))

        lines = segmenter.segment_flat(text)

        assert len(lines) == 20
        assert all(len(line.text.split()) == 5 for line in lines)

    def test_chunks_follow_running_clock(self, segmenter):
        text = " ".join(f"word{i}" for i in range(100))

        lines = segmenter.segment_flat(text)

        # 100 words over 120s: each 5-word chunk lasts 6s
        assert lines[0].start_time == 0.0
        assert lines[0].end_time == pytest.approx(6.0)
        assert lines[1].start_time == pytest.approx(6.0)
        assert lines[-1].end_time == pytest.approx(120.0)

    def test_dense_transcript_uses_larger_chunks(self, segmenter):
        text = " ".join(f"w{i}" for i in range(400))

        lines = segmenter.segment_flat(text)

        # rate = 400/120, floor(rate * 3) = 10
        assert len(lines[0].text.split()) == 10
        assert len(lines) == 40

    def test_word_level_spreads_words_evenly(self, segmenter):
        lines = segmenter.segment_flat("one two three four five", word_level=True)

        words = lines[0].words
        assert len(words) == 5
        assert words[0].start_time == 0.0
        assert words[-1].end_time == pytest.approx(lines[0].end_time)
        spans = [w.end_time - w.start_time for w in words]
        assert max(spans) == pytest.approx(min(spans))

    def test_empty_text(self, segmenter):
        assert segmenter.segment_flat("   ") == []


class TestSegmentResult:
    """Dispatch between timed and fallback segmentation."""

    def test_uses_timed_tokens(self, segmenter, word_tokens):
        result = TranscriptionResult(language="en", tokens=word_tokens, word_level=True)

        lines = segmenter.segment_result(result, word_level=True)

        assert len(lines) == 2
        assert lines[0].words is not None

    def test_falls_back_to_flat_text(self, segmenter):
        result = TranscriptionResult(language="en", text=" ".join(["la"] * 12))

        lines = segmenter.segment_result(result)

        assert [line.id for line in lines] == ["auto-0", "auto-1", "auto-2"]

    def test_word_level_unavailable_is_a_typed_error(self, segmenter):
        result = TranscriptionResult(
            language="en",
            tokens=[Token("A whole segment.", 0.0, 2.0)],
            word_level=False,
        )

        with pytest.raises(TranscriptionError) as excinfo:
            segmenter.segment_result(result, word_level=True)
        assert excinfo.value.kind == TranscriptionKind.FEATURE_UNSUPPORTED.value


def test_rejects_bad_settings():
    with pytest.raises(ValueError):
        TranscriptSegmenter(max_words=0)
    with pytest.raises(ValueError):
        TranscriptSegmenter(fallback_duration=0)
