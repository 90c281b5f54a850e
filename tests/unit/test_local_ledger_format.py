"""Test that the LocalLedger index record format and file layout round-trip exactly."""

import asyncio
import struct

import pytest

from chunkledger.core.contracts import ChunkedRecord, Config, Record
from chunkledger.core.errors import BackendError, ValidationError
from chunkledger.storage.local_ledger import KIND_CHUNKED, LocalLedger

OWNER = "0xowner"


def test_index_record_format():
    """Verify INDEX_RECORD_FORMAT matches pack/unpack exactly."""
    key_bytes = ("0x" + "ab" * 32).encode("utf-8").ljust(80, b"\0")
    owner_bytes = OWNER.encode("utf-8").ljust(80, b"\0")

    packed = struct.pack(
        LocalLedger.INDEX_RECORD_FORMAT,
        key_bytes,
        owner_bytes,
        KIND_CHUNKED,
        3,  # version_index
        1000,  # store_offset
        5,  # label_length
        500,  # blob_length
        255,  # chunk_count
        12345,  # checksum
    )

    # No implicit padding
    assert len(packed) == LocalLedger.INDEX_RECORD_SIZE == 80 + 80 + 1 + 8 + 8 + 4 + 4 + 2 + 4

    unpacked = struct.unpack(LocalLedger.INDEX_RECORD_FORMAT, packed)
    assert unpacked == (key_bytes, owner_bytes, KIND_CHUNKED, 3, 1000, 5, 500, 255, 12345)


@pytest.mark.asyncio
async def test_write_read_and_reopen(local_ledger_dir):
    ledger = LocalLedger(local_ledger_dir)
    await ledger.write("k1", OWNER, "first", b"v0")
    await ledger.write("k1", OWNER, "second", b"v1")
    result = await ledger.write_chunked("k2", OWNER, "chunked", [b"aa", b"b"])

    assert result.version_index == 0
    assert (local_ledger_dir / "records.bin").exists()
    assert (local_ledger_dir / "records.idx").exists()
    assert (local_ledger_dir / "ledger.meta").exists()

    reopened = LocalLedger(local_ledger_dir)

    latest = await reopened.get_latest("k1", OWNER)
    assert (latest.label, latest.value) == ("second", b"v1")
    assert (await reopened.get_at_index("k1", OWNER, 0)).value == b"v0"
    assert await reopened.get_at_index("k1", OWNER, 2) is None

    metadata = await reopened.get_chunked_metadata("k2", OWNER)
    assert (metadata.chunk_count, metadata.label) == (2, "chunked")
    assert await reopened.get_chunks("k2", OWNER, 0, 2) == [b"aa", b"b"]
    assert await reopened.get_chunks("k2", OWNER, 1, 2) == [b"b"]

    assert await reopened.total_writes("k1", OWNER) == 2
    assert reopened.validate_invariants() == []


@pytest.mark.asyncio
async def test_owner_is_case_insensitive_and_namespaced(local_ledger_dir):
    ledger = LocalLedger(local_ledger_dir)
    await ledger.write("k", "0xABC", "", b"mine")

    assert (await ledger.get_latest("k", "0xabc")).value == b"mine"
    assert await ledger.get_latest("k", "0xdef") is None
    assert await ledger.get_chunked_metadata("k", "0xabc") is None


@pytest.mark.asyncio
async def test_limits_enforced(local_ledger_dir):
    ledger = LocalLedger(local_ledger_dir, Config(chunk_size=4, max_chunks=2, max_direct_value_size=8))

    with pytest.raises(ValidationError):
        await ledger.write("k", OWNER, "", b"x" * 9)
    with pytest.raises(ValidationError):
        await ledger.write_chunked("k", OWNER, "", [])
    with pytest.raises(ValidationError):
        await ledger.write_chunked("k", OWNER, "", [b"a", b"b", b"c"])
    with pytest.raises(ValidationError):
        await ledger.write_chunked("k", OWNER, "", [b"12345"])
    with pytest.raises(ValidationError):
        await ledger.write("k" * 81, OWNER, "", b"x")

    # Limits persist with the ledger, not the opener's config
    reopened = LocalLedger(local_ledger_dir)
    assert reopened.chunk_size == 4
    assert reopened.max_chunks == 2


@pytest.mark.asyncio
async def test_checksum_mismatch_raises(local_ledger_dir):
    ledger = LocalLedger(local_ledger_dir)
    await ledger.write("k", OWNER, "", b"original")

    data = bytearray((local_ledger_dir / "records.bin").read_bytes())
    data[-1] ^= 0xFF
    (local_ledger_dir / "records.bin").write_bytes(bytes(data))

    with pytest.raises(BackendError):
        await ledger.get_latest("k", OWNER)


@pytest.mark.asyncio
async def test_iter_records(local_ledger_dir):
    ledger = LocalLedger(local_ledger_dir)
    await ledger.write("k1", OWNER, "l", b"v")
    await ledger.write_chunked("k2", OWNER, "c", [b"x", b"y"])

    records = list(ledger.iter_records())

    assert Record("k1", OWNER, "l", b"v", 0) in records
    assert ChunkedRecord("k2", OWNER, "c", [b"x", b"y"], 0) in records


@pytest.mark.asyncio
async def test_concurrent_reads_and_interleaved_writes(local_ledger_dir):
    """Reads run off the event loop while writes keep appending in order."""
    ledger = LocalLedger(local_ledger_dir)
    for i in range(10):
        await ledger.write(f"k{i}", OWNER, "", f"value {i}".encode("utf-8"))

    reads = [ledger.get_latest(f"k{i}", OWNER) for i in range(10)]
    writes = [ledger.write("k0", OWNER, "", f"again {i}".encode("utf-8")) for i in range(5)]
    results = await asyncio.gather(*reads, *writes)

    assert [stored.value for stored in results[:10]] == [f"value {i}".encode("utf-8") for i in range(10)]
    assert [written.version_index for written in results[10:]] == [1, 2, 3, 4, 5]
    assert ledger.validate_invariants() == []
    assert (await ledger.get_at_index("k0", OWNER, 5)).value == b"again 4"
