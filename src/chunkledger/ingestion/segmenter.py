"""
Segmenting strategies for chunkledger.

Payloads are cut into size-bounded segments before compression:
- text: at most `segment_size` UTF-8 bytes, cut on character boundaries
- binary: `binary_segment_size` bytes (a multiple of 3), base64 encoded, so
  independently encoded segments concatenate without interior padding
"""

import base64
import io
import logging
import math
from typing import Iterator, List, Optional, Union

from chunkledger.core.contracts import DATA_URI_PREFIX_MAX, Config, Segment
from chunkledger.core.errors import ValidationError
from chunkledger.ingestion.filetypes import detect_mime_from_base64

logger = logging.getLogger(__name__)

Payload = Union[str, bytes, bytearray, memoryview]


def utf8_boundary(data: bytes) -> int:
    """
    Return the largest prefix length of data that does not end mid-character.

    Only the trailing (at most 3) bytes are inspected; invalid sequences
    elsewhere are left for the decoder to report.
    """
    end = len(data)
    for back in range(1, min(4, end) + 1):
        byte = data[end - back]
        if byte & 0xC0 == 0x80:
            continue  # continuation byte, keep looking for the lead byte
        if byte < 0x80:
            return end
        if byte >= 0xF0:
            width = 4
        elif byte >= 0xE0:
            width = 3
        else:
            width = 2
        return end if back >= width else end - back
    return end


class _SliceReader:
    """Uniform random-access view over a sliceable or seekable source."""

    def __init__(self, source):
        if isinstance(source, str):
            source = source.encode("utf-8")
        if hasattr(source, "__getitem__") and hasattr(source, "__len__"):
            self._source = source
            self._file = None
            self.size = len(source)
        elif hasattr(source, "seek") and hasattr(source, "read"):
            self._source = None
            self._file = source
            self.size = source.seek(0, io.SEEK_END)
        else:
            raise ValidationError(
                f"Unsupported segment source type: {type(source).__name__}"
            )

    def read(self, offset: int, size: int) -> bytes:
        if self._file is not None:
            self._file.seek(offset)
            return self._file.read(size)
        return bytes(self._source[offset:offset + size])


class Segmenter:
    """Splits payloads into bounded segments (lazily for large sources)."""

    def __init__(self, config: Config):
        """
        Initialize segmenter with configuration.

        Args:
            config: Configuration object with segment_size, binary_segment_size
        """
        self.config = config
        self.segment_size = config.segment_size
        self.binary_segment_size = config.binary_segment_size

    def effective_segment_size(self, is_binary: bool) -> int:
        return self.binary_segment_size if is_binary else self.segment_size

    def split(
        self,
        payload: Payload,
        is_binary: bool = False,
        data_uri: bool = False,
        mime_type: Optional[str] = None,
    ) -> List[Segment]:
        """
        Split an in-memory payload into ordered segments.

        Args:
            payload: Text or bytes
            is_binary: Store as base64 (3-aligned segments) instead of text
            data_uri: Prefix the first binary segment with a data URI header
            mime_type: MIME type for the data URI (detected if omitted)

        Returns:
            List of Segment objects, never empty
        """
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        return list(self.stream(payload, is_binary, data_uri=data_uri, mime_type=mime_type))

    def stream(
        self,
        source,
        is_binary: bool = False,
        data_uri: bool = False,
        mime_type: Optional[str] = None,
    ) -> Iterator[Segment]:
        """
        Yield segments lazily from a randomly sliceable source.

        The source may be bytes-like, an mmap, or a seekable binary file
        object. Only one segment is held in memory at a time.

        Yields:
            Segment objects in payload order; exactly one (empty) segment
            for an empty source
        """
        reader = _SliceReader(source)
        size = self.effective_segment_size(is_binary)
        offset = 0
        index = 0

        while offset < reader.size:
            raw = reader.read(offset, size)
            if not raw:
                break  # source shrank underneath us

            if is_binary:
                text = base64.b64encode(raw).decode("ascii")
                if data_uri and index == 0:
                    text = self._data_uri_prefix(text, mime_type) + text
            else:
                if offset + len(raw) < reader.size:
                    cut = utf8_boundary(raw)
                    if cut == 0:
                        raise ValidationError(
                            f"segment_size {size} is too small to hold one UTF-8 character"
                        )
                    raw = raw[:cut]
                text = self._decode_text(raw, offset)

            yield Segment(index=index, raw=raw, text=text)
            offset += len(raw)
            index += 1

        if index == 0:
            text = ""
            if is_binary and data_uri:
                text = self._data_uri_prefix("", mime_type)
            yield Segment(index=0, raw=b"", text=text)

        logger.debug("Segmented %d bytes into %d segment(s)", reader.size, max(index, 1))

    def _decode_text(self, raw: bytes, offset: int) -> str:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError(
                f"Text payload is not valid UTF-8 near byte {offset + e.start}; store it as binary"
            ) from e

    def _data_uri_prefix(self, base64_text: str, mime_type: Optional[str]) -> str:
        mime = mime_type or detect_mime_from_base64(base64_text) or "application/octet-stream"
        prefix = f"data:{mime};base64,"
        if len(prefix) > DATA_URI_PREFIX_MAX:
            raise ValidationError(f"MIME type too long for a data URI header: {mime!r}")
        return prefix


def estimate_segment_count(payload_size: int, is_binary: bool, config: Optional[Config] = None) -> int:
    """
    Estimate how many segments a payload of payload_size bytes produces.

    Text estimates assume no character-boundary shortening.
    """
    config = config or Config()
    size = config.binary_segment_size if is_binary else config.segment_size
    return max(1, math.ceil(payload_size / size))
