"""
Record sources a manifest reference can point into.

A reference selects exactly one source: `s="d"` the direct store, no `s`
the chunked store. Both share the same fetch contract and return the
record's content as text.
"""

import logging
from typing import Union

from chunkledger.client.ledger import LedgerClient
from chunkledger.core.contracts import Reference
from chunkledger.core.errors import DecodeError, NotFoundError
from chunkledger.storage.manifest import DIRECT_SOURCE
from chunkledger.storage.packer import ChunkPacker

logger = logging.getLogger(__name__)


class DirectSource:
    """Reads a single direct record."""

    name = "direct"

    async def fetch(
        self, ledger: LedgerClient, reference: Reference, owner: str, packer: ChunkPacker
    ) -> str:
        """
        Fetch a direct record's value as text.

        Args:
            ledger: Ledger client
            reference: Reference naming the key and optional index
            owner: Effective owner to read under
            packer: Unused for direct records

        Returns:
            Value decoded as UTF-8

        Raises:
            NotFoundError: If no record exists at (key, owner[, index])
            DecodeError: If the value is not valid UTF-8
        """
        if reference.index is not None:
            stored = await ledger.get_at_index(reference.hash, owner, reference.index)
        else:
            stored = await ledger.get_latest(reference.hash, owner)
        if stored is None:
            raise NotFoundError(f"No direct record at {reference.hash} for {owner}")
        try:
            return stored.value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Direct record {reference.hash} is not valid UTF-8: {e}") from e


class ChunkedSource:
    """Reads and unpacks a chunked record."""

    name = "chunked"

    async def fetch(
        self, ledger: LedgerClient, reference: Reference, owner: str, packer: ChunkPacker
    ) -> str:
        metadata = await ledger.get_chunked_metadata(reference.hash, owner, reference.index)
        if metadata is None:
            raise NotFoundError(f"No chunked record at {reference.hash} for {owner}")
        if metadata.chunk_count == 0:
            # Zero chunks is the ledger's "no data" marker
            return ""

        chunks = await ledger.get_chunks(
            reference.hash, owner, 0, metadata.chunk_count, reference.index
        )
        if len(chunks) != metadata.chunk_count:
            raise DecodeError(
                f"Chunked record {reference.hash} returned {len(chunks)} of "
                f"{metadata.chunk_count} chunks"
            )
        return packer.unpack_text(chunks)


RecordSource = Union[DirectSource, ChunkedSource]

_DIRECT = DirectSource()
_CHUNKED = ChunkedSource()


def source_for(reference: Reference) -> RecordSource:
    """Select the source a reference points into."""
    if reference.source == DIRECT_SOURCE:
        return _DIRECT
    if reference.source is not None:
        logger.warning(
            "Unknown source %r on reference %s, reading from chunked store",
            reference.source,
            reference.hash,
        )
    return _CHUNKED
