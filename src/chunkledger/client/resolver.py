"""
Recursive manifest resolution.

A manifest's reference tags are replaced, in place, by the content they
point to. Referenced content may itself be a manifest, so resolution
recurses up to a depth bound. Within one depth layer references are fetched
in fixed-size batches: concurrent within a batch, batches one after another,
and a batch (recursion included) finishes before the next one starts.
"""

import asyncio
import logging
from typing import FrozenSet, List, Optional

from chunkledger.client.ledger import LedgerClient
from chunkledger.client.sources import source_for
from chunkledger.core.contracts import Config, Reference
from chunkledger.core.errors import ChunkLedgerError
from chunkledger.storage.manifest import ManifestCodec, ReferenceMatch, reference_key
from chunkledger.storage.packer import ChunkPacker

logger = logging.getLogger(__name__)

CIRCULAR_SENTINEL = "[Circular: {key}]"


class Resolver:
    """Expands manifests read from a ledger back into their content."""

    def __init__(
        self,
        ledger: LedgerClient,
        config: Optional[Config] = None,
        packer: Optional[ChunkPacker] = None,
    ):
        """
        Initialize resolver.

        Args:
            ledger: Ledger client to fetch referenced records from
            config: Batch size, default depth and fetch timeout
            packer: Packer used to unpack chunked records (built from config
                if omitted)
        """
        self.ledger = ledger
        self.config = config or Config()
        self.packer = packer or ChunkPacker(self.config)
        self.batch_size = self.config.batch_size
        self.fetch_timeout = self.config.fetch_timeout

    async def resolve(
        self,
        content: str,
        default_owner: str,
        max_depth: Optional[int] = None,
        visited: FrozenSet[str] = frozenset(),
        inherited_owner: Optional[str] = None,
    ) -> str:
        """
        Resolve every reference in content.

        Args:
            content: Manifest or plain text
            default_owner: Owner for references without an operator when no
                owner is inherited
            max_depth: Remaining expansion depth (config.max_depth if None)
            visited: Reference keys already expanded on this branch
            inherited_owner: Owner of the manifest that referenced content

        Returns:
            Content with each reference tag replaced by its resolved value.
            Failed fetches become empty strings; cyclic references become
            a "[Circular: <key>]" marker.
        """
        depth = self.config.max_depth if max_depth is None else max_depth
        if depth <= 0 or not ManifestCodec.detect(content):
            return content

        matches = ManifestCodec.find_references(content)
        visited = frozenset(visited)
        resolved: List[str] = []

        for start in range(0, len(matches), self.batch_size):
            batch = matches[start:start + self.batch_size]
            results = await asyncio.gather(
                *(
                    self._resolve_reference(
                        match.reference, default_owner, depth, visited, inherited_owner
                    )
                    for match in batch
                ),
                return_exceptions=True,
            )
            for match, result in zip(batch, results):
                if isinstance(result, BaseException):
                    # Cancelled sub-resolutions come back as exceptions
                    logger.warning("Failed to resolve %s: %r", match.reference.hash, result)
                    result = ""
                resolved.append(result)

        return self._reassemble(content, matches, resolved)

    async def _resolve_reference(
        self,
        reference: Reference,
        default_owner: str,
        depth: int,
        visited: FrozenSet[str],
        inherited_owner: Optional[str],
    ) -> str:
        owner = (reference.operator or inherited_owner or default_owner).lower()
        key = reference_key(reference, owner)

        if key in visited:
            logger.warning("Circular reference detected: %s", key)
            return CIRCULAR_SENTINEL.format(key=key)

        try:
            content = await self._fetch(reference, owner)
        except asyncio.TimeoutError:
            logger.warning("Timed out fetching %s after %ss", key, self.fetch_timeout)
            return ""
        except ChunkLedgerError as e:
            logger.warning("Failed to fetch %s: %s", key, e)
            return ""
        except Exception as e:
            logger.warning("Unexpected error fetching %s: %r", key, e)
            return ""

        # Each branch extends its own copy of the visited set
        return await self.resolve(
            content,
            default_owner,
            max_depth=depth - 1,
            visited=visited | {key},
            inherited_owner=owner,
        )

    async def _fetch(self, reference: Reference, owner: str) -> str:
        source = source_for(reference)
        fetch = source.fetch(self.ledger, reference, owner, self.packer)
        if self.fetch_timeout is not None:
            return await asyncio.wait_for(fetch, timeout=self.fetch_timeout)
        return await fetch

    @staticmethod
    def _reassemble(content: str, matches: List[ReferenceMatch], resolved: List[str]) -> str:
        parts = []
        position = 0
        for match, value in zip(matches, resolved):
            parts.append(content[position:match.start])
            parts.append(value)
            position = match.end
        parts.append(content[position:])
        return "".join(parts)
