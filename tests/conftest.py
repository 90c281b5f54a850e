"""Shared pytest fixtures for all tests."""

import asyncio
from typing import Dict, List, Optional, Set, Tuple

import pytest

from chunkledger.core.contracts import ChunkedMetadata, Config, StoredValue, WriteResult
from chunkledger.core.errors import BackendError
from chunkledger.storage.packer import ChunkPacker

OWNER = "0xAbCdEf0000000000000000000000000000000001"


class MemoryLedger:
    """
    In-memory LedgerClient for tests.

    Records every read, can fail selected keys with BackendError (or with
    ConnectionError, as a foreign client would), and tracks how many reads
    were in flight at once.
    """

    def __init__(self, delay: float = 0.0):
        self.direct: Dict[Tuple[str, str], List[StoredValue]] = {}
        self.chunked: Dict[Tuple[str, str], List[Tuple[str, List[bytes]]]] = {}
        self.failing_reads: Set[str] = set()
        self.failing_writes: Set[str] = set()
        self.crashing_reads: Set[str] = set()
        self.reads: List[str] = []
        self.events: List[Tuple[str, str]] = []
        self.writes: List[str] = []
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def _enter(self, key: str):
        self.reads.append(key)
        self.events.append(("start", key))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
            self.events.append(("end", key))
        if key in self.failing_reads:
            raise BackendError(f"read of {key} failed")
        if key in self.crashing_reads:
            raise ConnectionError("socket reset")

    # Test helpers

    def put(self, key: str, value, owner: str = OWNER, label: str = ""):
        if isinstance(value, str):
            value = value.encode("utf-8")
        self.direct.setdefault((key, owner.lower()), []).append(StoredValue(label, value))

    def put_chunked(self, key: str, chunks: List[bytes], owner: str = OWNER, label: str = ""):
        self.chunked.setdefault((key, owner.lower()), []).append((label, list(chunks)))

    def put_packed(self, key: str, text: str, owner: str = OWNER, config: Optional[Config] = None):
        self.put_chunked(key, ChunkPacker(config or Config()).pack(text), owner)

    # LedgerClient

    async def get_latest(self, key, owner):
        await self._enter(key)
        versions = self.direct.get((key, owner.lower()))
        return versions[-1] if versions else None

    async def get_at_index(self, key, owner, index):
        await self._enter(key)
        versions = self.direct.get((key, owner.lower()), [])
        return versions[index] if 0 <= index < len(versions) else None

    def _chunked_version(self, key, owner, index):
        versions = self.chunked.get((key, owner.lower()), [])
        if index is None:
            return versions[-1] if versions else None
        return versions[index] if 0 <= index < len(versions) else None

    async def get_chunked_metadata(self, key, owner, index=None):
        await self._enter(key)
        version = self._chunked_version(key, owner, index)
        if version is None:
            return None
        label, chunks = version
        return ChunkedMetadata(chunk_count=len(chunks), label=label)

    async def get_chunks(self, key, owner, start, end, index=None):
        await self._enter(key)
        version = self._chunked_version(key, owner, index)
        if version is None:
            return []
        _, chunks = version
        return chunks[start:end]

    async def write(self, key, owner, label, value):
        self.writes.append(key)
        if key in self.failing_writes:
            raise BackendError(f"write of {key} failed")
        self.put(key, value, owner, label)
        return WriteResult(key, owner.lower(), len(self.direct[(key, owner.lower())]) - 1)

    async def write_chunked(self, key, owner, label, chunks):
        self.writes.append(key)
        if key in self.failing_writes:
            raise BackendError(f"write of {key} failed")
        self.put_chunked(key, chunks, owner, label)
        return WriteResult(key, owner.lower(), len(self.chunked[(key, owner.lower())]) - 1)


@pytest.fixture
def owner():
    """Owner address used across tests."""
    return OWNER


@pytest.fixture
def config():
    """Default configuration."""
    return Config()


@pytest.fixture
def ledger():
    """
    Create an empty in-memory ledger.

    Returns:
        MemoryLedger instance
    """
    return MemoryLedger()


@pytest.fixture
def local_ledger_dir(tmp_path):
    """Directory for a file-backed LocalLedger."""
    return tmp_path / "ledger"


@pytest.fixture
def slow_ledger():
    """In-memory ledger whose reads yield to the event loop, for concurrency checks."""
    return MemoryLedger(delay=0.01)
