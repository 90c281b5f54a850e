"""
Core data structures (dataclasses) for chunkledger.

All core data structures are defined as explicit dataclasses.
"""

import math
from dataclasses import dataclass, field
from typing import FrozenSet, List, Literal, Optional, Tuple, Union

from chunkledger.core.errors import ValidationError

# Hard cap on sub-chunks per chunked record, fixed by the ledger.
LEDGER_MAX_CHUNKS = 255

# Upper bound on the "data:<mime>;base64," header of a binary first segment.
DATA_URI_PREFIX_MAX = 256

Compression = Literal["gzip", "zstd"]
UnitKind = Literal["leaf", "manifest"]
StoreKind = Literal["direct", "chunked"]


def worst_case_compressed_size(size: int) -> int:
    """Upper bound on compressed output for `size` input bytes (gzip or zstd)."""
    return size + (size >> 8) + 128


@dataclass
class Config:
    """Limits and tuning for segmenting, packing, resolving and planning."""

    # Segmenting
    segment_size: int = 80_000
    binary_segment_size: int = 79_998  # largest multiple of 3 <= 80,000

    # Ledger record limits
    chunk_size: int = 20_000  # bytes per sub-chunk of a chunked record
    max_chunks: int = LEDGER_MAX_CHUNKS
    max_direct_value_size: int = 20_000

    # Compression
    compression: Compression = "gzip"
    gzip_level: int = 6
    zstd_level: int = 3

    # Resolution
    batch_size: int = 3
    max_depth: int = 3
    fetch_timeout: Optional[float] = None  # seconds, per fetch

    # Manifest wire format
    manifest_version: str = "0.0.1"

    def max_segment_text_bytes(self, is_binary: bool) -> int:
        """Largest text form (in bytes) a single segment can take."""
        if is_binary:
            return 4 * math.ceil(self.binary_segment_size / 3) + DATA_URI_PREFIX_MAX
        return self.segment_size

    def worst_case_chunk_count(self, is_binary: bool) -> int:
        """Chunk count of a maximal segment whose data does not compress at all."""
        hex_len = 2 * self.max_segment_text_bytes(is_binary) + 2
        return max(1, math.ceil(worst_case_compressed_size(hex_len) / self.chunk_size))

    def validate(self) -> None:
        """
        Check that the settings are consistent.

        Raises:
            ValidationError: If any limit is out of range, or a maximal
                segment could pack into more chunks than a record allows.
        """
        for name in ("segment_size", "binary_segment_size", "chunk_size", "max_chunks",
                     "max_direct_value_size", "batch_size"):
            if getattr(self, name) <= 0:
                raise ValidationError(f"{name} must be positive, got {getattr(self, name)}")
        if self.max_depth < 0:
            raise ValidationError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.max_chunks > LEDGER_MAX_CHUNKS:
            raise ValidationError(
                f"max_chunks {self.max_chunks} exceeds ledger limit of {LEDGER_MAX_CHUNKS}"
            )
        if self.binary_segment_size % 3 != 0:
            raise ValidationError(
                f"binary_segment_size must be a multiple of 3, got {self.binary_segment_size}"
            )
        if self.compression not in ("gzip", "zstd"):
            raise ValidationError(f"Unsupported compression: {self.compression}")
        if not self.manifest_version:
            raise ValidationError("manifest_version cannot be empty")
        if self.fetch_timeout is not None and self.fetch_timeout <= 0:
            raise ValidationError(f"fetch_timeout must be positive, got {self.fetch_timeout}")

        for is_binary in (False, True):
            worst = self.worst_case_chunk_count(is_binary)
            if worst > self.max_chunks:
                kind = "binary" if is_binary else "text"
                raise ValidationError(
                    f"A maximal {kind} segment may pack into {worst} chunks, "
                    f"exceeding max_chunks={self.max_chunks}"
                )


@dataclass
class Record:
    """A single append-only value stored at (key, owner)."""

    key: str
    owner: str
    label: str
    value: bytes
    version_index: int = 0


@dataclass
class ChunkedRecord:
    """A value stored as an ordered list of bounded sub-chunks."""

    key: str
    owner: str
    label: str
    chunks: List[bytes]
    version_index: int = 0


@dataclass(frozen=True)
class StoredValue:
    """Label and value of a direct record as returned by the ledger."""

    label: str
    value: bytes


@dataclass(frozen=True)
class ChunkedMetadata:
    """Chunk count and label of a chunked record (count 0 means no data)."""

    chunk_count: int
    label: str


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a single dispatched write."""

    key: str
    owner: str
    version_index: int


@dataclass(frozen=True)
class Reference:
    """
    Pointer to a stored record inside a manifest.

    The operator is canonicalised to lowercase so that encode/decode round
    trips are exact. `source is None` selects the chunked store, "d" the
    direct store.
    """

    hash: str
    version: str
    index: Optional[int] = None
    operator: Optional[str] = None
    source: Optional[str] = None

    def __post_init__(self):
        if self.operator is not None:
            object.__setattr__(self, "operator", self.operator.lower())


@dataclass(frozen=True)
class Segment:
    """
    A bounded slice of the original payload prior to compression.

    `text` is the byte-exact text form that is hashed and packed: the UTF-8
    text itself, or base64 for binary payloads.
    """

    index: int
    raw: bytes
    text: str


@dataclass(frozen=True)
class UploadUnit:
    """
    One candidate write.

    Leaf payloads are the value bytes (direct store) or a tuple of packed
    chunks (chunked store). Manifest units list the ids of the leaves they
    reference in `depends_on`.
    """

    id: str
    kind: UnitKind
    payload: Union[bytes, Tuple[bytes, ...]]
    store: StoreKind = "direct"
    label: str = ""
    depends_on: FrozenSet[str] = frozenset()
    content_addressed: bool = False


@dataclass
class UploadPlan:
    """Partition of upload units into writes to send and writes to skip."""

    to_send: List[UploadUnit] = field(default_factory=list)
    to_skip: List[UploadUnit] = field(default_factory=list)


@dataclass
class UploadBundle:
    """Prepared units for one payload, plus the key it will be readable at."""

    units: List[UploadUnit]
    top_level_hash: str
    manifest: Optional[str] = None


@dataclass
class UploadResult:
    """Summary of a planned and dispatched upload."""

    key: str
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    failed_ids: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0


@dataclass
class StoredData:
    """Content read back from the ledger, with manifests already resolved."""

    label: str
    data: str
    is_manifest: bool = False
