"""
Chunk packing for chunked ledger records.

Format of a packed segment:
- the segment's bytes are written as "0x" + lowercase hex text (byte-exact)
- that ASCII text is compressed with the configured codec
- the compressed bytes are split into `chunk_size` chunks, final one shorter

Zero chunks at a key means "no chunked data", so packing always produces at
least one chunk, even for an empty segment.
"""

import binascii
import logging
import math
from typing import List, Sequence, Union

from chunkledger.core.contracts import Config, Segment
from chunkledger.core.errors import DecodeError, ValidationError
from chunkledger.storage.compression import compress_data, decompress_data

logger = logging.getLogger(__name__)

SegmentData = Union[str, bytes, Segment]


def _segment_bytes(segment: SegmentData) -> bytes:
    if isinstance(segment, Segment):
        segment = segment.text
    if isinstance(segment, str):
        return segment.encode("utf-8")
    return bytes(segment)


class ChunkPacker:
    """Compresses segments into bounded chunks and reverses the process."""

    def __init__(self, config: Config):
        self.config = config
        self.chunk_size = config.chunk_size
        self.max_chunks = config.max_chunks
        self.codec = config.compression
        self.level = config.zstd_level if config.compression == "zstd" else config.gzip_level

    def pack(self, segment: SegmentData) -> List[bytes]:
        """
        Compress a segment and split it into ledger-sized chunks.

        Args:
            segment: Segment, text (UTF-8 encoded) or raw bytes

        Returns:
            Ordered list of chunks, never empty

        Raises:
            ValidationError: If the result exceeds max_chunks
        """
        hex_text = b"0x" + _segment_bytes(segment).hex().encode("ascii")
        compressed = compress_data(hex_text, codec=self.codec, level=self.level)

        chunks = [
            compressed[i:i + self.chunk_size]
            for i in range(0, len(compressed), self.chunk_size)
        ]
        if not chunks:
            chunks.append(b"")

        self.validate_chunks(chunks)
        logger.debug("Packed %d hex bytes into %d chunk(s)", len(hex_text), len(chunks))
        return chunks

    def validate_chunks(self, chunks: Sequence[bytes]) -> None:
        """
        Enforce the per-record limits on a chunk list.

        Raises:
            ValidationError: If there are no chunks, too many chunks, or a
                chunk is larger than chunk_size
        """
        if len(chunks) == 0:
            raise ValidationError("Chunks array cannot be empty")
        if len(chunks) > self.max_chunks:
            raise ValidationError(
                f"Too many chunks: {len(chunks)} exceeds maximum of {self.max_chunks}"
            )
        for i, chunk in enumerate(chunks):
            if len(chunk) > self.chunk_size:
                raise ValidationError(
                    f"Chunk {i} is {len(chunk)} bytes, exceeds chunk_size {self.chunk_size}"
                )

    def unpack(self, chunks: Sequence[bytes]) -> bytes:
        """
        Reassemble, decompress and decode packed chunks.

        Args:
            chunks: Chunks in stored order

        Returns:
            The original segment bytes

        Raises:
            DecodeError: If the chunks are corrupt
        """
        compressed = b"".join(bytes(chunk) for chunk in chunks)
        hex_text = decompress_data(compressed, codec=self.codec)

        if not hex_text.startswith(b"0x"):
            raise DecodeError("Decompressed chunk data is missing its 0x prefix")
        try:
            return binascii.unhexlify(hex_text[2:])
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Decompressed chunk data is not valid hex: {e}") from e

    def unpack_text(self, chunks: Sequence[bytes]) -> str:
        """Unpack chunks and decode the result as UTF-8 text."""
        data = self.unpack(chunks)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Unpacked chunk data is not valid UTF-8: {e}") from e

    def estimate_chunk_count(self, segment: SegmentData) -> int:
        """Chunk count of the segment's uncompressed hex form (an upper estimate)."""
        hex_len = 2 * len(_segment_bytes(segment)) + 2
        return max(1, math.ceil(hex_len / self.chunk_size))
