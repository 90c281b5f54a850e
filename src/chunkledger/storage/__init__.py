"""
Storage layer: compression, chunk packing, manifest codec, and a local ledger.
"""

from chunkledger.storage.compression import compress_data, decompress_data
from chunkledger.storage.local_ledger import LocalLedger
from chunkledger.storage.manifest import ManifestCodec, generate_manifest, reference_key
from chunkledger.storage.packer import ChunkPacker

__all__ = [
    "compress_data",
    "decompress_data",
    "ChunkPacker",
    "ManifestCodec",
    "generate_manifest",
    "reference_key",
    "LocalLedger",
]
