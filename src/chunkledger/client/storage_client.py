"""
High-level read and upload API over a ledger client.
"""

import logging
from typing import Optional

from chunkledger.client.ledger import LedgerClient
from chunkledger.client.planner import UploadPlanner
from chunkledger.client.resolver import Resolver
from chunkledger.client.writer import (
    prepare_manifest_storage,
    prepare_put,
    should_use_manifest_storage,
)
from chunkledger.core.contracts import (
    Config,
    StoredData,
    UploadBundle,
    UploadResult,
    UploadUnit,
    WriteResult,
)
from chunkledger.core.errors import ChunkLedgerError, DecodeError, NotFoundError
from chunkledger.core.ids import content_hash, get_storage_key_bytes
from chunkledger.storage.manifest import ManifestCodec
from chunkledger.storage.packer import ChunkPacker

logger = logging.getLogger(__name__)


class StorageClient:
    """
    Reads and writes content of any size through a LedgerClient.

    Reads try the chunked store first, then the direct store, and expand
    manifests. Uploads are planned against what the ledger already holds and
    the remaining writes are dispatched one by one.
    """

    def __init__(self, ledger: LedgerClient, config: Optional[Config] = None):
        """
        Initialize storage client.

        Args:
            ledger: Ledger client implementation
            config: Configuration (validated on construction)
        """
        self.ledger = ledger
        self.config = config or Config()
        self.config.validate()
        self.packer = ChunkPacker(self.config)
        self.resolver = Resolver(ledger, self.config, self.packer)
        self.planner = UploadPlanner(self.config, self.packer)

    async def read(
        self,
        key: str,
        owner: str,
        index: Optional[int] = None,
        key_format: Optional[str] = None,
        max_depth: Optional[int] = None,
    ) -> StoredData:
        """
        Read the content stored at (key, owner).

        Args:
            key: Storage key (normalized to bytes32)
            owner: Owner the record is stored under
            index: Historical index, or None for the latest version
            key_format: "raw", "bytes32" or None to auto-detect
            max_depth: Manifest expansion depth (config.max_depth if None)

        Returns:
            StoredData with manifests resolved

        Raises:
            NotFoundError: If neither store holds the key
            DecodeError: If the stored data is corrupt
        """
        storage_key = get_storage_key_bytes(key, key_format)

        stored = await self._read_chunked(storage_key, owner, index)
        if stored is None:
            stored = await self._read_direct(storage_key, owner, index)
        if stored is None:
            raise NotFoundError(f"No record at {storage_key} for {owner}")

        if not ManifestCodec.detect(stored.data):
            return stored

        data = await self.resolver.resolve(stored.data, owner, max_depth=max_depth)
        return StoredData(label=stored.label, data=data, is_manifest=True)

    async def read_chunked(
        self,
        key: str,
        owner: str,
        index: Optional[int] = None,
        key_format: Optional[str] = None,
    ) -> StoredData:
        """
        Read a chunked record without falling back to the direct store.

        Raises:
            NotFoundError: If no chunked data exists at (key, owner)
        """
        storage_key = get_storage_key_bytes(key, key_format)
        stored = await self._read_chunked(storage_key, owner, index)
        if stored is None:
            raise NotFoundError(f"No chunked record at {storage_key} for {owner}")
        return stored

    async def _read_chunked(
        self, key: str, owner: str, index: Optional[int]
    ) -> Optional[StoredData]:
        metadata = await self.ledger.get_chunked_metadata(key, owner, index)
        if metadata is None or metadata.chunk_count == 0:
            return None
        chunks = await self.ledger.get_chunks(key, owner, 0, metadata.chunk_count, index)
        return StoredData(label=metadata.label, data=self.packer.unpack_text(chunks))

    async def _read_direct(
        self, key: str, owner: str, index: Optional[int]
    ) -> Optional[StoredData]:
        if index is not None:
            value = await self.ledger.get_at_index(key, owner, index)
        else:
            value = await self.ledger.get_latest(key, owner)
        if value is None:
            return None
        try:
            data = value.value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Direct record {key} is not valid UTF-8: {e}") from e
        return StoredData(label=value.label, data=data)

    def prepare_upload(
        self,
        payload,
        owner: str,
        storage_key: Optional[str] = None,
        label: str = "",
        is_binary: bool = False,
        key_format: Optional[str] = None,
        source: Optional[str] = None,
    ) -> UploadBundle:
        """
        Prepare the writes for a payload.

        Short text without reference tags becomes one direct record (keyed by
        storage_key, or by its content hash). Everything else is stored as
        leaves behind a manifest: packed chunked records by default, or direct
        records when source is "d".

        Raises:
            ValidationError: If the payload cannot be stored within limits
        """
        if not is_binary and isinstance(payload, str) and not should_use_manifest_storage(
            payload, self.config
        ):
            key = storage_key or content_hash(payload)
            unit = prepare_put(key, label, payload, self.config, key_format)
            return UploadBundle(units=[unit], top_level_hash=unit.id)

        return prepare_manifest_storage(
            payload,
            owner,
            storage_key=storage_key,
            label=label,
            is_binary=is_binary,
            config=self.config,
            key_format=key_format,
            source=source,
        )

    async def upload(
        self,
        payload,
        owner: str,
        storage_key: Optional[str] = None,
        label: str = "",
        is_binary: bool = False,
        key_format: Optional[str] = None,
        source: Optional[str] = None,
    ) -> UploadResult:
        """
        Prepare, plan and dispatch an upload.

        Writes already present on the ledger are skipped. Each remaining
        write is independent: a failure is logged and counted, and dispatch
        carries on with the next unit. Nothing is retried.

        Returns:
            UploadResult with the key the content is readable at
        """
        bundle = self.prepare_upload(
            payload, owner, storage_key, label, is_binary, key_format, source
        )
        plan = await self.planner.plan(bundle.units, self.ledger, owner)

        result = UploadResult(key=bundle.top_level_hash, skipped=len(plan.to_skip))
        for unit in plan.to_send:
            try:
                await self.dispatch(unit, owner)
            except ChunkLedgerError as e:
                logger.error("Write of %s failed: %s", unit.id, e)
                result.failed += 1
                result.failed_ids.append(unit.id)
            else:
                result.sent += 1

        logger.info(
            "Upload %s: %d sent, %d skipped, %d failed",
            result.key,
            result.sent,
            result.skipped,
            result.failed,
        )
        return result

    async def dispatch(self, unit: UploadUnit, owner: str) -> WriteResult:
        """Write a single unit to the store it targets."""
        if unit.store == "chunked":
            return await self.ledger.write_chunked(unit.id, owner, unit.label, list(unit.payload))
        return await self.ledger.write(unit.id, owner, unit.label, unit.payload)
