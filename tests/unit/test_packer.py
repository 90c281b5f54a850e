"""
Tests for chunk packing and compression.
"""

import gzip
import os

import pytest

from chunkledger.core.contracts import Config, Segment
from chunkledger.core.errors import DecodeError, ValidationError
from chunkledger.storage.compression import compress_data, decompress_data
from chunkledger.storage.packer import ChunkPacker


def test_pack_empty_segment_yields_one_chunk():
    """Zero chunks means "no data", so empty content still packs to one chunk."""
    packer = ChunkPacker(Config())
    chunks = packer.pack(b"")

    assert len(chunks) == 1
    assert packer.unpack(chunks) == b""


def test_pack_unpack_text():
    packer = ChunkPacker(Config())
    text = "Hello, ledger! ünïcode ✓ " * 100

    chunks = packer.pack(text)

    assert packer.unpack_text(chunks) == text
    assert packer.unpack(chunks) == text.encode("utf-8")


def test_pack_accepts_segment():
    packer = ChunkPacker(Config())
    segment = Segment(index=0, raw=b"raw bytes", text="cmF3IGJ5dGVz")

    # The text form is what gets packed
    assert packer.unpack_text(packer.pack(segment)) == "cmF3IGJ5dGVz"


def test_packed_format_is_gzipped_hex():
    packer = ChunkPacker(Config())
    chunks = packer.pack(b"\x00\xffab")

    assert gzip.decompress(b"".join(chunks)) == b"0x00ff6162"


def test_packing_is_deterministic():
    packer = ChunkPacker(Config())
    assert packer.pack("same input") == packer.pack("same input")


def test_incompressible_data_spans_multiple_chunks():
    config = Config(chunk_size=1_000)
    packer = ChunkPacker(config)
    data = os.urandom(5_000)

    chunks = packer.pack(data)

    assert len(chunks) > 1
    assert all(len(c) <= 1_000 for c in chunks)
    assert all(len(c) == 1_000 for c in chunks[:-1])
    assert packer.unpack(chunks) == data


def test_pack_over_max_chunks_raises():
    packer = ChunkPacker(Config(chunk_size=100, max_chunks=2))
    with pytest.raises(ValidationError):
        packer.pack(os.urandom(1_000))


def test_validate_chunks():
    packer = ChunkPacker(Config(chunk_size=10, max_chunks=2))

    packer.validate_chunks([b"a" * 10, b"b"])
    with pytest.raises(ValidationError):
        packer.validate_chunks([])
    with pytest.raises(ValidationError):
        packer.validate_chunks([b"a", b"b", b"c"])
    with pytest.raises(ValidationError):
        packer.validate_chunks([b"a" * 11])


def test_unpack_corrupt_data_raises_decode_error():
    packer = ChunkPacker(Config())
    chunks = packer.pack("some content worth compressing " * 20)

    with pytest.raises(DecodeError):
        packer.unpack([b"not gzip at all"])
    with pytest.raises(DecodeError):
        packer.unpack([chunks[0][: len(chunks[0]) // 2]])


def test_unpack_rejects_missing_hex_prefix():
    packer = ChunkPacker(Config())
    with pytest.raises(DecodeError):
        packer.unpack([gzip.compress(b"deadbeef")])
    with pytest.raises(DecodeError):
        packer.unpack([gzip.compress(b"0xzz")])


def test_zstd_codec():
    packer = ChunkPacker(Config(compression="zstd"))
    text = "zstd packed content " * 50

    assert packer.unpack_text(packer.pack(text)) == text


def test_compression_helpers():
    data = b"compress me " * 100
    for codec in ("gzip", "zstd"):
        assert decompress_data(compress_data(data, codec=codec), codec=codec) == data

    # gzip output carries no timestamp
    assert compress_data(data) == compress_data(data)

    with pytest.raises(ValidationError):
        compress_data(data, codec="brotli")
    with pytest.raises(DecodeError):
        decompress_data(b"garbage", codec="zstd")


def test_estimate_chunk_count():
    packer = ChunkPacker(Config(chunk_size=100))
    assert packer.estimate_chunk_count(b"") == 1
    assert packer.estimate_chunk_count(b"a" * 49) == 1
    assert packer.estimate_chunk_count(b"a" * 50) == 2
