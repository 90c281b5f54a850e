"""
Write preparation.

Turns caller payloads into UploadUnits without touching the ledger. All
limit checks happen here, so a ValidationError is always raised before any
write is dispatched.

Manifest storage layout:
- each segment becomes a leaf keyed by content_hash(segment.text) (owner
  independent, so identical segments deduplicate across uploads), stored as
  packed chunks, or as a direct record when source="d"
- the manifest is a direct record keyed by the caller's storage key, or by
  top_level_hash of the leaf keys, referencing every leaf with i="0" and
  o="<owner>"
- references that do not fit one direct record are grouped into index
  manifests, keyed by top_level_hash of their own references and read
  through the direct source
"""

import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from chunkledger.core.contracts import Config, UploadBundle, UploadUnit
from chunkledger.core.errors import ValidationError
from chunkledger.core.ids import content_hash, get_storage_key_bytes, top_level_hash
from chunkledger.ingestion.segmenter import Segmenter
from chunkledger.storage.manifest import DIRECT_SOURCE, ManifestCodec, generate_manifest
from chunkledger.storage.packer import ChunkPacker

logger = logging.getLogger(__name__)

Value = Union[str, bytes]


def _to_bytes(value: Value) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def prepare_put(
    key: str,
    label: str,
    value: Value,
    config: Optional[Config] = None,
    key_format: Optional[str] = None,
) -> UploadUnit:
    """
    Prepare a single direct write.

    Args:
        key: Storage key (normalized to bytes32)
        label: Short text stored alongside the value
        value: Text (UTF-8 encoded) or bytes
        config: Limits to check against
        key_format: "raw", "bytes32" or None to auto-detect

    Returns:
        Direct leaf UploadUnit

    Raises:
        ValidationError: If the key is empty or the value is too large
    """
    config = config or Config()
    payload = _to_bytes(value)
    if len(payload) > config.max_direct_value_size:
        raise ValidationError(
            f"Value is {len(payload)} bytes, exceeds direct record limit of "
            f"{config.max_direct_value_size}; use manifest storage"
        )
    return UploadUnit(
        id=get_storage_key_bytes(key, key_format),
        kind="leaf",
        payload=payload,
        store="direct",
        label=label,
    )


def prepare_chunked_put(
    key: str,
    label: str,
    chunks: Sequence[bytes],
    config: Optional[Config] = None,
    key_format: Optional[str] = None,
    content_addressed: bool = False,
) -> UploadUnit:
    """
    Prepare a single chunked write.

    Raises:
        ValidationError: If the key is empty, there are no chunks or more
            than max_chunks, or a chunk exceeds chunk_size
    """
    config = config or Config()
    if not key:
        raise ValidationError("Storage key cannot be empty")
    ChunkPacker(config).validate_chunks(chunks)
    return UploadUnit(
        id=get_storage_key_bytes(key, key_format),
        kind="leaf",
        payload=tuple(bytes(chunk) for chunk in chunks),
        store="chunked",
        label=label,
        content_addressed=content_addressed,
    )


def prepare_bulk_put(
    entries: Iterable[Tuple[str, str, Value]],
    config: Optional[Config] = None,
    key_format: Optional[str] = None,
) -> List[UploadUnit]:
    """
    Prepare several direct writes at once.

    Every entry is validated before any unit is returned, so one bad entry
    rejects the whole batch.

    Args:
        entries: (key, label, value) tuples
    """
    units = [prepare_put(key, label, value, config, key_format) for key, label, value in entries]
    if not units:
        raise ValidationError("Bulk put requires at least one entry")
    return units


def should_use_manifest_storage(data: str, config: Optional[Config] = None) -> bool:
    """
    Whether text must be stored behind a manifest.

    True when it is too large for one direct record, or when it already
    contains reference tags (a direct record holding tags would be read
    back as a manifest).
    """
    config = config or Config()
    return len(data.encode("utf-8")) > config.max_direct_value_size or ManifestCodec.detect(data)


def _group_by_size(
    hashes: List[str], owner: str, source: Optional[str], config: Config
) -> List[List[str]]:
    """Split hashes into runs whose manifest text fits one direct record."""
    groups: List[List[str]] = []
    current: List[str] = []
    size = 0
    for leaf_hash in hashes:
        tag_size = len(generate_manifest([leaf_hash], 0, owner, source, config.manifest_version))
        if current and size + tag_size > config.max_direct_value_size:
            groups.append(current)
            current, size = [], 0
        current.append(leaf_hash)
        size += tag_size
    if current:
        groups.append(current)
    return groups


def prepare_manifest_storage(
    payload,
    owner: str,
    storage_key: Optional[str] = None,
    label: str = "",
    is_binary: bool = False,
    config: Optional[Config] = None,
    key_format: Optional[str] = None,
    data_uri: bool = False,
    mime_type: Optional[str] = None,
    source: Optional[str] = None,
) -> UploadBundle:
    """
    Segment, pack and hash a payload into leaves plus a manifest.

    A manifest too large for one direct record is split into index
    manifests (each keyed by top_level_hash of its own references), and the
    top manifest references those instead. Every index level costs one unit
    of resolution depth on read.

    Args:
        payload: Text, bytes, or any source Segmenter.stream accepts
        owner: Owner the leaves will be written under
        storage_key: Explicit key for the manifest (top-level hash if None)
        label: Label of the manifest record
        is_binary: Store the payload as base64 segments
        config: Segment, chunk and manifest settings
        key_format: Format of storage_key ("raw", "bytes32" or None)
        data_uri: Prefix the first binary segment with a data URI header
        mime_type: MIME type for the data URI header
        source: None to store leaves as packed chunked records, "d" to store
            each segment's text as a direct record

    Returns:
        UploadBundle with manifest units first (top manifest, then index
        manifests), then one leaf per distinct segment

    Raises:
        ValidationError: If any segment packs into too many chunks, or a
            direct leaf exceeds max_direct_value_size
    """
    config = config or Config()
    if not owner:
        raise ValidationError("Owner cannot be empty")
    if source not in (None, DIRECT_SOURCE):
        raise ValidationError(f"Unknown leaf source {source!r}")
    owner = owner.lower()
    segmenter = Segmenter(config)
    packer = ChunkPacker(config)

    hashes = []
    leaves = {}
    for segment in segmenter.stream(payload, is_binary, data_uri=data_uri, mime_type=mime_type):
        leaf_hash = content_hash(segment.text)
        hashes.append(leaf_hash)
        if leaf_hash in leaves:
            continue
        if source == DIRECT_SOURCE:
            leaves[leaf_hash] = replace(
                prepare_put(leaf_hash, "", segment.text, config), content_addressed=True
            )
        else:
            leaves[leaf_hash] = prepare_chunked_put(
                leaf_hash, "", packer.pack(segment), config, content_addressed=True
            )

    # Fold references into index manifests until the top level fits
    index_manifests = {}
    level, level_source = hashes, source
    while True:
        groups = _group_by_size(level, owner, level_source, config)
        if len(groups) <= 1:
            break
        if len(groups) == len(level):
            raise ValidationError(
                f"max_direct_value_size {config.max_direct_value_size} cannot hold two references"
            )
        next_level = []
        for group in groups:
            index_key = top_level_hash(group)
            next_level.append(index_key)
            index_manifests[index_key] = UploadUnit(
                id=index_key,
                kind="manifest",
                payload=generate_manifest(
                    group, 0, owner, level_source, config.manifest_version
                ).encode("utf-8"),
                store="direct",
                depends_on=frozenset(group),
                content_addressed=True,
            )
        level, level_source = next_level, DIRECT_SOURCE

    manifest = generate_manifest(level, 0, owner, level_source, version=config.manifest_version)
    if storage_key:
        key = get_storage_key_bytes(storage_key, key_format)
    else:
        key = top_level_hash(hashes)

    manifest_unit = replace(
        prepare_put(key, label, manifest, config),
        kind="manifest",
        depends_on=frozenset(level),
    )

    logger.info(
        "Prepared manifest %s: %d segment(s), %d distinct leaf unit(s), %d index manifest(s)",
        key,
        len(hashes),
        len(leaves),
        len(index_manifests),
    )
    return UploadBundle(
        units=[manifest_unit] + list(reversed(index_manifests.values())) + list(leaves.values()),
        top_level_hash=key,
        manifest=manifest,
    )
