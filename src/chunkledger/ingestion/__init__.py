"""
Payload ingestion: segmenting and file type detection.
"""

from chunkledger.ingestion.filetypes import base64_to_data_uri, detect_mime_from_base64, is_binary_path
from chunkledger.ingestion.segmenter import Segmenter, estimate_segment_count

__all__ = [
    "Segmenter",
    "estimate_segment_count",
    "detect_mime_from_base64",
    "base64_to_data_uri",
    "is_binary_path",
]
