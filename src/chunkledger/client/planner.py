"""
Idempotent upload planning.

Diffs candidate writes against what the ledger already holds and splits
them into writes to send and writes to skip. Uncertain state always resolves
to "send": a redundant write is preferred over a wrongly skipped one.
"""

import asyncio
import logging
from typing import Dict, Optional, Sequence, Set, Union

from chunkledger.client.ledger import LedgerClient
from chunkledger.core.contracts import Config, UploadPlan, UploadUnit
from chunkledger.core.errors import ChunkLedgerError
from chunkledger.storage.packer import ChunkPacker

logger = logging.getLogger(__name__)

ExpectedContent = Dict[str, Union[str, bytes]]


class UploadPlanner:
    """Partitions upload units into to_send and to_skip."""

    def __init__(self, config: Optional[Config] = None, packer: Optional[ChunkPacker] = None):
        self.config = config or Config()
        self.packer = packer or ChunkPacker(self.config)
        self.fetch_timeout = self.config.fetch_timeout

    async def plan(
        self,
        units: Sequence[UploadUnit],
        ledger: LedgerClient,
        owner: str,
        expected_content: Optional[ExpectedContent] = None,
    ) -> UploadPlan:
        """
        Decide which units still need to be written.

        Leaf checks run concurrently with no batching. A manifest is skipped
        only when every leaf it depends on is skipped and the stored manifest
        equals the one about to be written.

        Args:
            units: Leaf and manifest units, in dispatch order
            ledger: Ledger client to query
            owner: Owner the units would be written under
            expected_content: Expected decoded content per unit id (defaults
                to the unit's own payload)

        Returns:
            UploadPlan with manifests ordered before leaves in both lists
        """
        expected_content = expected_content or {}
        leaves = [unit for unit in units if unit.kind == "leaf"]
        manifests = [unit for unit in units if unit.kind == "manifest"]

        leaf_present = await asyncio.gather(
            *(self._is_present(unit, ledger, owner, expected_content) for unit in leaves),
            return_exceptions=True,
        )
        # A cancelled check counts as absent
        leaf_present = [present is True for present in leaf_present]
        skipped = {unit.id for unit, present in zip(leaves, leaf_present) if present}

        # Index manifests are decided before the manifests that reference them
        decided: Dict[str, bool] = {}
        pending = list(manifests)
        while pending:
            pending_ids = {unit.id for unit in pending}
            ready = [unit for unit in pending if not unit.depends_on & pending_ids] or pending
            flags = await asyncio.gather(
                *(
                    self._manifest_present(unit, skipped, ledger, owner, expected_content)
                    for unit in ready
                ),
                return_exceptions=True,
            )
            for unit, present in zip(ready, flags):
                decided[unit.id] = present is True
                if present is True:
                    skipped.add(unit.id)
            pending = [unit for unit in pending if unit.id not in decided]
        manifest_present = [decided[unit.id] for unit in manifests]

        plan = UploadPlan()
        for group, flags in ((manifests, manifest_present), (leaves, leaf_present)):
            for unit, present in zip(group, flags):
                (plan.to_skip if present else plan.to_send).append(unit)

        logger.info(
            "Planned upload for %s: %d to send, %d to skip",
            owner,
            len(plan.to_send),
            len(plan.to_skip),
        )
        return plan

    async def _manifest_present(
        self,
        unit: UploadUnit,
        skipped: Set[str],
        ledger: LedgerClient,
        owner: str,
        expected_content: ExpectedContent,
    ) -> bool:
        missing = unit.depends_on - skipped
        if missing:
            # References are not all resolvable yet, so resend even a stale copy
            logger.debug("Manifest %s has %d dependencies to send", unit.id, len(missing))
            return False
        return await self._is_present(unit, ledger, owner, expected_content)

    async def _is_present(
        self,
        unit: UploadUnit,
        ledger: LedgerClient,
        owner: str,
        expected_content: ExpectedContent,
    ) -> bool:
        try:
            check = self._stored_matches(unit, ledger, owner, expected_content)
            if self.fetch_timeout is not None:
                return await asyncio.wait_for(check, timeout=self.fetch_timeout)
            return await check
        except asyncio.TimeoutError:
            logger.warning("Timed out checking %s, assuming absent", unit.id)
            return False
        except ChunkLedgerError as e:
            logger.warning("Failed to check %s, assuming absent: %s", unit.id, e)
            return False
        except Exception as e:
            logger.warning("Unexpected error checking %s, assuming absent: %r", unit.id, e)
            return False

    async def _stored_matches(
        self,
        unit: UploadUnit,
        ledger: LedgerClient,
        owner: str,
        expected_content: ExpectedContent,
    ) -> bool:
        if unit.store == "chunked":
            metadata = await ledger.get_chunked_metadata(unit.id, owner)
            if metadata is None or metadata.chunk_count == 0:
                return False
            if unit.content_addressed:
                # Same content hash under the same owner implies same content
                return True
            if metadata.label != unit.label:
                return False
            chunks = await ledger.get_chunks(unit.id, owner, 0, metadata.chunk_count)
            stored = self.packer.unpack(chunks)
        else:
            value = await ledger.get_latest(unit.id, owner)
            if value is None or value.label != unit.label:
                return False
            stored = value.value

        return stored == self._expected_bytes(unit, expected_content)

    def _expected_bytes(self, unit: UploadUnit, expected_content: ExpectedContent) -> bytes:
        if unit.id in expected_content:
            expected = expected_content[unit.id]
            return expected.encode("utf-8") if isinstance(expected, str) else bytes(expected)
        if unit.store == "chunked":
            return self.packer.unpack(list(unit.payload))
        return bytes(unit.payload)
