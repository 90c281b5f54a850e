"""
chunkledger - Store content of any size on a size-capped, append-only ledger.
"""

from chunkledger.client import Resolver, StorageClient, UploadPlanner
from chunkledger.core import Config, load_config
from chunkledger.storage import LocalLedger

__version__ = "0.1.0"

__all__ = [
    "StorageClient",
    "Resolver",
    "UploadPlanner",
    "LocalLedger",
    "Config",
    "load_config",
]
