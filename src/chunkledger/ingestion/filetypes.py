"""
File type detection for binary payloads.

Binary payloads are stored as base64, so detection works on the base64 text
of the first segment (magic bytes) with the file name as a fallback.
"""

import base64
import binascii
import mimetypes
from pathlib import Path
from typing import Optional, Union

# Base64 prefixes of common file signatures
_BASE64_SIGNATURES = [
    ("JVBERi", "application/pdf"),  # %PDF-
    ("iVBORw0KGgo", "image/png"),
    ("/9j/", "image/jpeg"),
    ("R0lGODlh", "image/gif"),  # GIF87a / GIF89a
    ("SUQz", "audio/mpeg"),  # ID3 tag
]

_TEXT_MIME_PREFIXES = (
    "text/",
    "application/json",
    "application/xml",
    "application/javascript",
    "application/typescript",
    "application/x-javascript",
    "application/ecmascript",
)

_TEXT_EXTENSIONS = {
    "txt", "md", "json", "xml", "html", "htm", "css", "js", "ts", "jsx", "tsx",
    "yaml", "yml", "toml", "ini", "cfg", "conf", "log", "csv", "svg",
}


def _peek(base64_data: str, length: int) -> bytes:
    """Decode the first `length` base64 characters (rounded down to a quad)."""
    usable = base64_data[: length - length % 4]
    try:
        return base64.b64decode(usable, validate=True)
    except (binascii.Error, ValueError):
        return b""


def detect_mime_from_base64(base64_data: str) -> Optional[str]:
    """
    Detect the MIME type of raw base64 data from its magic bytes.

    Args:
        base64_data: Base64 text without a data URI prefix

    Returns:
        MIME type string, or None if the type cannot be detected
    """
    if not base64_data:
        return None

    for prefix, mime in _BASE64_SIGNATURES:
        if base64_data.startswith(prefix):
            return mime

    head = _peek(base64_data, 200)

    # RIFF container: only WebP is recognised
    if head.startswith(b"RIFF") and b"WEBP" in head[:16]:
        return "image/webp"
    if b"<svg" in head or b"<SVG" in head:
        return "image/svg+xml"
    lowered = head.lower()
    if b"<html" in lowered or b"<!doctype" in lowered:
        return "text/html"
    # MPEG frame sync: 0xFF followed by 0xF0-0xFF
    if len(head) >= 2 and head[0] == 0xFF and (head[1] & 0xF0) == 0xF0:
        return "audio/mpeg"
    if b"ftyp" in head[:40]:
        return "video/mp4"
    if head.startswith(b"PK\x03\x04"):
        return "application/zip"
    if head[:10].strip().startswith((b"{", b"[")):
        return "application/json"

    return None


def base64_to_data_uri(base64_data: str, mime_type: Optional[str] = None) -> str:
    """Prefix base64 data with a data URI header, detecting the type if needed."""
    mime = mime_type or detect_mime_from_base64(base64_data) or "application/octet-stream"
    return f"data:{mime};base64,{base64_data}"


def is_binary_path(path: Union[str, Path]) -> bool:
    """
    Decide whether a file should be stored as binary (base64) or as text.

    Known text MIME types and text extensions are read as text; everything
    else, including unknown types, is treated as binary.
    """
    path = Path(path)
    mime, _ = mimetypes.guess_type(path.name)

    if mime and mime.startswith(_TEXT_MIME_PREFIXES):
        return False
    if not mime or mime == "application/octet-stream":
        return path.suffix.lower().lstrip(".") not in _TEXT_EXTENSIONS
    return True
