"""
Tests for payload segmenting.
"""

import base64
import io

import pytest

from chunkledger.core.contracts import Config
from chunkledger.core.errors import ValidationError
from chunkledger.ingestion.segmenter import Segmenter, estimate_segment_count, utf8_boundary


def test_text_segment_sizes():
    """200,000 bytes with 80,000-byte segments -> 80,000 / 80,000 / 40,000."""
    segmenter = Segmenter(Config())
    segments = segmenter.split("a" * 200_000)

    assert [len(s.raw) for s in segments] == [80_000, 80_000, 40_000]
    assert [s.index for s in segments] == [0, 1, 2]
    assert "".join(s.text for s in segments) == "a" * 200_000


def test_empty_payload_yields_one_segment():
    segments = Segmenter(Config()).split("")

    assert len(segments) == 1
    assert segments[0].raw == b""
    assert segments[0].text == ""

    assert len(Segmenter(Config()).split(b"", is_binary=True)) == 1


def test_text_segments_cut_on_character_boundaries():
    """A multi-byte character is never split across segments."""
    segmenter = Segmenter(Config(segment_size=5))
    text = "aaaa€b"  # € is 3 bytes in UTF-8

    segments = segmenter.split(text)

    assert [s.text for s in segments] == ["aaaa", "€b"]
    assert all(len(s.raw) <= 5 for s in segments)
    assert "".join(s.text for s in segments) == text


def test_utf8_boundary():
    assert utf8_boundary(b"abc") == 3
    assert utf8_boundary("aé".encode("utf-8")) == 3
    assert utf8_boundary(b"a\xc3") == 1
    assert utf8_boundary(b"a\xe2\x82") == 1
    assert utf8_boundary(b"a\xe2\x82\xac") == 4


def test_invalid_utf8_text_raises():
    with pytest.raises(ValidationError):
        Segmenter(Config()).split(b"\xff\xfe")


def test_segment_size_too_small_for_character():
    with pytest.raises(ValidationError):
        Segmenter(Config(segment_size=1)).split("€€")


def test_binary_segments_concatenate_without_padding():
    """3-aligned binary segments join into the base64 of the whole payload."""
    data = bytes(range(14))
    segments = Segmenter(Config(binary_segment_size=6)).split(data, is_binary=True)

    assert [len(s.raw) for s in segments] == [6, 6, 2]
    assert "".join(s.text for s in segments) == base64.b64encode(data).decode("ascii")
    assert "=" not in segments[0].text
    assert "=" not in segments[1].text


def test_binary_data_uri_prefix():
    png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
    segments = Segmenter(Config()).split(png, is_binary=True, data_uri=True)

    assert segments[0].text.startswith("data:image/png;base64,")

    forced = Segmenter(Config()).split(png, is_binary=True, data_uri=True, mime_type="image/x-test")
    assert forced[0].text.startswith("data:image/x-test;base64,")


def test_stream_from_file_object():
    """Test lazy segmenting of a seekable file."""
    source = io.BytesIO(b"x" * 10)
    stream = Segmenter(Config(segment_size=4)).stream(source)

    first = next(stream)
    assert first.raw == b"xxxx"
    assert [s.raw for s in stream] == [b"xxxx", b"xx"]


def test_estimate_segment_count():
    assert estimate_segment_count(200_000, False) == 3
    assert estimate_segment_count(0, True) == 1
    assert estimate_segment_count(79_999, True) == 2
