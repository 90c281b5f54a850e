"""
Client layer: ledger contract, resolution, upload planning and dispatch.
"""

from chunkledger.client.ledger import LedgerClient
from chunkledger.client.planner import UploadPlanner
from chunkledger.client.resolver import Resolver
from chunkledger.client.sources import ChunkedSource, DirectSource, source_for
from chunkledger.client.storage_client import StorageClient
from chunkledger.client.writer import (
    prepare_bulk_put,
    prepare_chunked_put,
    prepare_manifest_storage,
    prepare_put,
)

__all__ = [
    "LedgerClient",
    "DirectSource",
    "ChunkedSource",
    "source_for",
    "Resolver",
    "UploadPlanner",
    "StorageClient",
    "prepare_put",
    "prepare_chunked_put",
    "prepare_bulk_put",
    "prepare_manifest_storage",
]
