"""
Contract of the backing ledger client.

The transport and signing behind these calls live outside this package.
Implementations raise BackendError for transport failures and never retry
on their own; each write is independent and separately failable.
"""

from typing import List, Optional, Protocol, Sequence, runtime_checkable

from chunkledger.core.contracts import ChunkedMetadata, StoredValue, WriteResult


@runtime_checkable
class LedgerClient(Protocol):
    """Async read/write access to direct and chunked ledger records."""

    async def get_latest(self, key: str, owner: str) -> Optional[StoredValue]:
        """Latest direct value at (key, owner), or None if absent."""
        ...

    async def get_at_index(self, key: str, owner: str, index: int) -> Optional[StoredValue]:
        """Direct value at a historical index, or None if absent."""
        ...

    async def get_chunked_metadata(
        self, key: str, owner: str, index: Optional[int] = None
    ) -> Optional[ChunkedMetadata]:
        """Chunk count and label of a chunked record, or None if absent."""
        ...

    async def get_chunks(
        self, key: str, owner: str, start: int, end: int, index: Optional[int] = None
    ) -> List[bytes]:
        """Chunks [start, end) of a chunked record, in stored order."""
        ...

    async def write(self, key: str, owner: str, label: str, value: bytes) -> WriteResult:
        ...

    async def write_chunked(
        self, key: str, owner: str, label: str, chunks: Sequence[bytes]
    ) -> WriteResult:
        ...
