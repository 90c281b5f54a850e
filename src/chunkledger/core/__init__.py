"""
Core contracts, content addressing and errors for chunkledger.
"""

from chunkledger.core.config import load_config
from chunkledger.core.contracts import (
    ChunkedMetadata,
    ChunkedRecord,
    Config,
    Record,
    Reference,
    Segment,
    StoredData,
    StoredValue,
    UploadBundle,
    UploadPlan,
    UploadResult,
    UploadUnit,
    WriteResult,
)
from chunkledger.core.errors import (
    BackendError,
    ChunkLedgerError,
    DecodeError,
    NotFoundError,
    ValidationError,
)
from chunkledger.core.ids import content_hash, get_storage_key_bytes, top_level_hash

__all__ = [
    "Config",
    "load_config",
    "Record",
    "ChunkedRecord",
    "Reference",
    "Segment",
    "StoredValue",
    "ChunkedMetadata",
    "StoredData",
    "WriteResult",
    "UploadUnit",
    "UploadPlan",
    "UploadBundle",
    "UploadResult",
    "ChunkLedgerError",
    "ValidationError",
    "NotFoundError",
    "DecodeError",
    "BackendError",
    "content_hash",
    "top_level_hash",
    "get_storage_key_bytes",
]
