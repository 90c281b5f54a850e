"""
File-backed append-only ledger for offline development and integration tests.

Implements the LedgerClient read/write contract on local files. It is a
stand-in for the real ledger transport: there is no signing, metering or
consensus, only the same addressing, versioning and size limits.
"""

import asyncio
import json
import logging
import struct
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import xxhash

from chunkledger.core.contracts import (
    LEDGER_MAX_CHUNKS,
    ChunkedMetadata,
    ChunkedRecord,
    Config,
    Record,
    StoredValue,
    WriteResult,
)
from chunkledger.core.errors import BackendError, ValidationError

logger = logging.getLogger(__name__)

KIND_DIRECT = 0
KIND_CHUNKED = 1


class LocalLedger:
    """
    Append-only ledger stored in a directory.

    Format:
    - records.bin: Append-only blobs (label bytes, then the value; chunked
      records carry a chunk length table before the chunk data)
    - records.idx: Index file with explicit fixed-width record schema
    - ledger.meta: JSON limits the ledger was created with
    """

    # Index record format (binary struct)
    # Fields (9 total):
    # key (80 bytes), owner (80 bytes), kind (B), version_index (Q),
    # store_offset (Q), label_length (I), blob_length (I),
    # chunk_count (H), checksum (I, xxhash32 of the blob)
    # Use explicit little-endian format with no padding
    INDEX_RECORD_FORMAT = "<80s80sBQQIIHI"
    INDEX_RECORD_SIZE = struct.calcsize(INDEX_RECORD_FORMAT)
    FIELD_WIDTH = 80

    def __init__(self, ledger_dir: Path, config: Optional[Config] = None):
        """
        Open (or create) a ledger directory.

        Args:
            ledger_dir: Directory containing records.bin, records.idx, ledger.meta
            config: Limits to enforce on writes (defaults to Config())
        """
        self.ledger_dir = Path(ledger_dir)
        self.ledger_dir.mkdir(parents=True, exist_ok=True)
        self.records_bin_path = self.ledger_dir / "records.bin"
        self.records_idx_path = self.ledger_dir / "records.idx"
        self.meta_path = self.ledger_dir / "ledger.meta"

        self.config = config or Config()

        # In-memory index: (kind, key, owner) -> versions in write order
        self.index: Dict[Tuple[int, str, str], List[dict]] = {}

        self._init_meta()
        self.load_index()

    def _init_meta(self):
        meta = self.load_meta()
        if not meta:
            self.save_meta(
                {
                    "chunk_size": self.config.chunk_size,
                    "max_chunks": self.config.max_chunks,
                    "max_direct_value_size": self.config.max_direct_value_size,
                }
            )
            return
        # Limits are fixed when the ledger is created
        self.chunk_size = meta["chunk_size"]
        self.max_chunks = meta["max_chunks"]
        self.max_direct_value_size = meta["max_direct_value_size"]

    def save_meta(self, meta: Dict):
        """Save ledger limits to ledger.meta."""
        with open(self.meta_path, "w") as f:
            json.dump(meta, f, indent=2)
        self.chunk_size = meta["chunk_size"]
        self.max_chunks = meta["max_chunks"]
        self.max_direct_value_size = meta["max_direct_value_size"]

    def load_meta(self) -> Dict:
        """Load ledger limits from ledger.meta."""
        if not self.meta_path.exists():
            return {}

        with open(self.meta_path, "r") as f:
            return json.load(f)

    # Reads

    async def get_latest(self, key: str, owner: str) -> Optional[StoredValue]:
        versions = self.index.get((KIND_DIRECT, key, owner.lower()))
        if not versions:
            return None
        return await asyncio.to_thread(self._read_direct, versions[-1])

    async def get_at_index(self, key: str, owner: str, index: int) -> Optional[StoredValue]:
        record = self._version(KIND_DIRECT, key, owner, index)
        if record is None:
            return None
        return await asyncio.to_thread(self._read_direct, record)

    async def get_chunked_metadata(
        self, key: str, owner: str, index: Optional[int] = None
    ) -> Optional[ChunkedMetadata]:
        record = self._version(KIND_CHUNKED, key, owner, index)
        if record is None:
            return None
        label, _ = await asyncio.to_thread(self._read_blob, record)
        return ChunkedMetadata(chunk_count=record["chunk_count"], label=label)

    async def get_chunks(
        self, key: str, owner: str, start: int, end: int, index: Optional[int] = None
    ) -> List[bytes]:
        record = self._version(KIND_CHUNKED, key, owner, index)
        if record is None:
            return []
        _, body = await asyncio.to_thread(self._read_blob, record)
        return self._split_chunks(body, record["chunk_count"])[start:end]

    async def total_writes(self, key: str, owner: str) -> int:
        """Number of versions at (key, owner) across both stores."""
        owner = owner.lower()
        return len(self.index.get((KIND_CHUNKED, key, owner), [])) + len(
            self.index.get((KIND_DIRECT, key, owner), [])
        )

    # Writes
    # Appends run on the event loop thread so offsets and versions never interleave.
    # Reads go to a worker thread; they only touch records already indexed.

    async def write(self, key: str, owner: str, label: str, value: bytes) -> WriteResult:
        if len(value) > self.max_direct_value_size:
            raise ValidationError(
                f"Value is {len(value)} bytes, exceeds limit of {self.max_direct_value_size}"
            )
        return self._append(KIND_DIRECT, key, owner, label, bytes(value), chunk_count=0)

    async def write_chunked(
        self, key: str, owner: str, label: str, chunks: Sequence[bytes]
    ) -> WriteResult:
        if len(chunks) == 0:
            raise ValidationError("Chunks array cannot be empty")
        if len(chunks) > min(self.max_chunks, LEDGER_MAX_CHUNKS):
            raise ValidationError(
                f"Too many chunks: {len(chunks)} exceeds maximum of {self.max_chunks}"
            )
        for chunk in chunks:
            if len(chunk) > self.chunk_size:
                raise ValidationError(
                    f"Chunk is {len(chunk)} bytes, exceeds chunk size {self.chunk_size}"
                )

        body = struct.pack(f"<{len(chunks)}I", *(len(c) for c in chunks)) + b"".join(
            bytes(c) for c in chunks
        )
        return self._append(KIND_CHUNKED, key, owner, label, body, chunk_count=len(chunks))

    def _append(
        self, kind: int, key: str, owner: str, label: str, body: bytes, chunk_count: int
    ) -> WriteResult:
        owner = owner.lower()
        key_bytes = self._pad(key, "key")
        owner_bytes = self._pad(owner, "owner")
        label_bytes = label.encode("utf-8")
        blob = label_bytes + body
        checksum = xxhash.xxh32(blob).intdigest()

        versions = self.index.setdefault((kind, key, owner), [])
        version_index = len(versions)

        # Append to records.bin
        store_offset = self.records_bin_path.stat().st_size if self.records_bin_path.exists() else 0
        with open(self.records_bin_path, "ab") as f:
            f.write(blob)

        record = struct.pack(
            self.INDEX_RECORD_FORMAT,
            key_bytes,
            owner_bytes,
            kind,
            version_index,
            store_offset,
            len(label_bytes),
            len(blob),
            chunk_count,
            checksum,
        )
        with open(self.records_idx_path, "ab") as f:
            f.write(record)

        versions.append(
            {
                "store_offset": store_offset,
                "label_length": len(label_bytes),
                "blob_length": len(blob),
                "chunk_count": chunk_count,
                "checksum": checksum,
            }
        )
        logger.debug(
            "Appended %s record %s/%s version %d (%d bytes)",
            "chunked" if kind == KIND_CHUNKED else "direct",
            key,
            owner,
            version_index,
            len(blob),
        )
        return WriteResult(key=key, owner=owner, version_index=version_index)

    def _pad(self, value: str, name: str) -> bytes:
        encoded = value.encode("utf-8")
        if len(encoded) > self.FIELD_WIDTH:
            raise ValidationError(f"{name} longer than {self.FIELD_WIDTH} bytes: {value!r}")
        return encoded.ljust(self.FIELD_WIDTH, b"\0")

    def _version(self, kind: int, key: str, owner: str, index: Optional[int]) -> Optional[dict]:
        versions = self.index.get((kind, key, owner.lower()))
        if not versions:
            return None
        if index is None:
            return versions[-1]
        if 0 <= index < len(versions):
            return versions[index]
        return None

    def _read_blob(self, record: dict) -> Tuple[str, bytes]:
        with open(self.records_bin_path, "rb") as f:
            f.seek(record["store_offset"])
            blob = f.read(record["blob_length"])

        # Validate checksum (xxhash32, stored as unsigned int)
        if xxhash.xxh32(blob).intdigest() != record["checksum"]:
            raise BackendError(f"Checksum mismatch at offset {record['store_offset']}")

        label_length = record["label_length"]
        return blob[:label_length].decode("utf-8"), blob[label_length:]

    @staticmethod
    def _split_chunks(body: bytes, count: int) -> List[bytes]:
        lengths = struct.unpack(f"<{count}I", body[: 4 * count])
        chunks = []
        pos = 4 * count
        for length in lengths:
            chunks.append(body[pos:pos + length])
            pos += length
        return chunks

    def _read_direct(self, record: dict) -> StoredValue:
        label, value = self._read_blob(record)
        return StoredValue(label=label, value=value)

    def load_index(self):
        """Load index from records.idx into memory."""
        self.index = {}
        if not self.records_idx_path.exists():
            return

        with open(self.records_idx_path, "rb") as f:
            while True:
                record_bytes = f.read(self.INDEX_RECORD_SIZE)
                if len(record_bytes) < self.INDEX_RECORD_SIZE:
                    break

                (
                    key_bytes,
                    owner_bytes,
                    kind,
                    version_index,
                    store_offset,
                    label_length,
                    blob_length,
                    chunk_count,
                    checksum,
                ) = struct.unpack(self.INDEX_RECORD_FORMAT, record_bytes)

                key = key_bytes.rstrip(b"\0").decode("utf-8")
                owner = owner_bytes.rstrip(b"\0").decode("utf-8")
                versions = self.index.setdefault((kind, key, owner), [])
                if version_index != len(versions):
                    raise BackendError(
                        f"Index out of order for {key}/{owner}: "
                        f"expected version {len(versions)}, found {version_index}"
                    )
                versions.append(
                    {
                        "store_offset": store_offset,
                        "label_length": label_length,
                        "blob_length": blob_length,
                        "chunk_count": chunk_count,
                        "checksum": checksum,
                    }
                )

    def iter_records(self) -> Iterator[Union[Record, ChunkedRecord]]:
        """
        Iterate every stored version, grouped by (key, owner).

        Yields:
            Record for direct versions, ChunkedRecord for chunked ones
        """
        for (kind, key, owner), versions in self.index.items():
            for version_index, record in enumerate(versions):
                label, body = self._read_blob(record)
                if kind == KIND_DIRECT:
                    yield Record(key, owner, label, body, version_index)
                    continue
                chunks = self._split_chunks(body, record["chunk_count"])
                yield ChunkedRecord(key, owner, label, chunks, version_index)

    def validate_invariants(self) -> List[str]:
        """
        Validate ledger invariants.

        Returns:
            List of error messages (empty if all valid)
        """
        errors = []
        bin_size = self.records_bin_path.stat().st_size if self.records_bin_path.exists() else 0

        for (kind, key, owner), versions in self.index.items():
            for version_index, record in enumerate(versions):
                end = record["store_offset"] + record["blob_length"]
                if end > bin_size:
                    errors.append(
                        f"{key}/{owner} v{version_index}: store_offset {record['store_offset']} "
                        f"+ length {record['blob_length']} exceeds records.bin size {bin_size}"
                    )
                if kind == KIND_CHUNKED and not 0 < record["chunk_count"] <= LEDGER_MAX_CHUNKS:
                    errors.append(
                        f"{key}/{owner} v{version_index}: chunk count {record['chunk_count']} "
                        f"outside 1..{LEDGER_MAX_CHUNKS}"
                    )

        return errors
