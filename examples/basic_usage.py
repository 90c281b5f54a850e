"""
Basic usage example for chunkledger.
"""

import asyncio

from chunkledger import Config, LocalLedger, StorageClient
from chunkledger.core.logging_config import setup_logging

OWNER = "0x1111111111111111111111111111111111111111"


async def main():
    setup_logging()

    # Open a file-backed ledger for local development
    ledger = LocalLedger("ledger/")
    client = StorageClient(ledger, Config())

    # Upload content larger than a single record
    print("Uploading...")
    payload = "".join(f"Paragraph {i}: lorem ipsum dolor sit amet.\n" for i in range(5_000))
    result = await client.upload(payload, OWNER, storage_key="notes", label="notes.txt")
    print(f"Stored at {result.key}: {result.sent} sent, {result.skipped} skipped")

    # Uploading again sends nothing
    again = await client.upload(payload, OWNER, storage_key="notes", label="notes.txt")
    print(f"Re-upload: {again.sent} sent, {again.skipped} skipped")

    # Read it back, manifests are resolved automatically
    print("\nReading...")
    stored = await client.read("notes", OWNER)
    print(f"Label: {stored.label}")
    print(f"Manifest: {stored.is_manifest}")
    print(f"Round trip ok: {stored.data == payload}")


if __name__ == "__main__":
    asyncio.run(main())
