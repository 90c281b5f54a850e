"""
Deterministic content addressing for chunkledger.

ID Policy (Keccak-256, "0x" + 64 lowercase hex chars):
- content_hash: keccak256(utf8(text)) for text, keccak256(bytes) for bytes
- top_level_hash: content_hash of the ordered leaf hashes joined as text
  (order-sensitive, so reordering segments changes the key)
- storage keys: bytes32 keys pass through lowercased; other keys are
  lowercased, then left-padded to 32 bytes when short enough, hashed otherwise
"""

import re
from typing import Iterable, Optional, Tuple, Union
from urllib.parse import quote

from Crypto.Hash import keccak

from chunkledger.core.errors import ValidationError

BYTES32_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


def keccak256(data: bytes) -> str:
    """Return the 0x-prefixed Keccak-256 hex digest of data."""
    digest = keccak.new(digest_bits=256)
    digest.update(data)
    return "0x" + digest.hexdigest()


def content_hash(data: Union[str, bytes]) -> str:
    """
    Hash content deterministically.

    Text is always encoded as UTF-8 before hashing, so a segment hashes the
    same whether it is passed as str or as its UTF-8 bytes.

    Args:
        data: Text or raw bytes

    Returns:
        0x-prefixed 64-character hex digest
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return keccak256(bytes(data))


def top_level_hash(hashes: Iterable[str]) -> str:
    """
    Derive the key of a manifest from its ordered leaf hashes.

    Args:
        hashes: Leaf content hashes in manifest order

    Returns:
        content_hash of the concatenated hash strings
    """
    return content_hash("".join(hashes))


def is_bytes32(key: str) -> bool:
    """Check whether key is already a 0x-prefixed 32-byte hex string."""
    return bool(BYTES32_PATTERN.match(key))


def to_bytes32(text: str) -> str:
    """
    Convert a short string to a left-padded bytes32 hex key.

    Raises:
        ValidationError: If the UTF-8 form is longer than 32 bytes
    """
    encoded = text.encode("utf-8")
    if len(encoded) > 32:
        raise ValidationError(f"String must be at most 32 bytes, got {len(encoded)}")
    return "0x" + encoded.hex().rjust(64, "0")


def get_storage_key_bytes(key: str, key_format: Optional[str] = None) -> str:
    """
    Normalize a caller-supplied storage key to bytes32 form.

    Args:
        key: Raw key string or bytes32 hex
        key_format: "bytes32" to use as-is, "raw" to always convert,
            None to auto-detect

    Returns:
        Lowercase 0x-prefixed bytes32 key
    """
    if not key:
        raise ValidationError("Storage key cannot be empty")
    if key_format not in (None, "raw", "bytes32"):
        raise ValidationError(f"Unknown key format: {key_format}")

    if key_format == "bytes32" or (key_format is None and is_bytes32(key)):
        return key.lower()

    lowered = key.lower()
    if len(lowered.encode("utf-8")) > 32:
        return content_hash(lowered)
    return to_bytes32(lowered)


def format_storage_key_for_display(key: str) -> Tuple[str, bool]:
    """
    Decode a bytes32 key back to readable text when possible.

    Returns:
        Tuple of (display text, whether it was decoded)
    """
    if is_bytes32(key):
        try:
            decoded = bytes.fromhex(key[2:]).decode("utf-8").replace("\0", "")
        except UnicodeDecodeError:
            decoded = ""
        if decoded.strip() and decoded.isascii() and decoded.isprintable():
            return (decoded, True)
    return (key, False)


def encode_storage_key_for_url(key: str) -> str:
    """Percent-encode a storage key for use as a URL path segment."""
    return quote(key, safe="!~*'()")
