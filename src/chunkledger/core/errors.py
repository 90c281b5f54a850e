"""
Exception hierarchy for chunkledger.

Each failure class maps to one propagation policy:
- ValidationError: caller misuse (limits exceeded), raised before any write
- NotFoundError: key/owner absent, treated as an "absent" signal
- DecodeError: corrupt compressed data, fatal for that single read
- BackendError: transport failure, handled conservatively by callers
"""


class ChunkLedgerError(Exception):
    """Base exception for all chunkledger failures."""


class ValidationError(ChunkLedgerError):
    """Raised when a size or chunk-count limit is exceeded, or input is invalid."""


class NotFoundError(ChunkLedgerError):
    """Raised when no record exists for a key/owner pair."""


class DecodeError(ChunkLedgerError):
    """Raised when stored chunk data cannot be decompressed or decoded."""


class BackendError(ChunkLedgerError):
    """Raised when the ledger transport fails."""
