"""
Compression utilities for chunkledger.

Two codecs:
- gzip (default): deterministic header (mtime 0), the format of chunks
  already stored on the ledger
- zstd via the zstandard library
"""

import gzip
import zlib

import zstandard as zstd

from chunkledger.core.errors import DecodeError, ValidationError

CODECS = ("gzip", "zstd")


def compress_data(data: bytes, codec: str = "gzip", level: int = 6) -> bytes:
    """
    Compress data.

    Args:
        data: Data to compress
        codec: "gzip" or "zstd"
        level: Compression level (gzip 0-9, zstd 1-22)

    Returns:
        Compressed data
    """
    if codec == "gzip":
        return gzip.compress(data, compresslevel=level, mtime=0)
    if codec == "zstd":
        cctx = zstd.ZstdCompressor(level=level)
        return cctx.compress(data)
    raise ValidationError(f"Unsupported compression codec: {codec}")


def decompress_data(compressed_data: bytes, codec: str = "gzip") -> bytes:
    """
    Decompress data.

    Args:
        compressed_data: Compressed data
        codec: "gzip" or "zstd"

    Returns:
        Decompressed data

    Raises:
        DecodeError: If the data is corrupt or not in the codec's format
    """
    try:
        if codec == "gzip":
            return gzip.decompress(compressed_data)
        if codec == "zstd":
            dctx = zstd.ZstdDecompressor()
            # Frames written by ZstdCompressor.compress carry their content size
            return dctx.decompress(compressed_data)
    except (OSError, EOFError, zlib.error, zstd.ZstdError) as e:
        raise DecodeError(f"Failed to decompress {codec} data: {e}") from e
    raise ValidationError(f"Unsupported compression codec: {codec}")
