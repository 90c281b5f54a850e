"""
Manifest encoding and decoding.

A manifest is an ordered run of self-closing reference tags with no
separators:

    <ref k="<hash>" v="<version>" i="<index>" o="<owner>" s="<source>" />

k and v are required; i, o and s are optional but always appear in that
order when present. The operator is written in lowercase. An absent s means
the chunked store, s="d" the direct store.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from chunkledger.core.contracts import Reference
from chunkledger.core.errors import ValidationError

TAG_NAME = "ref"
DEFAULT_VERSION = "0.0.1"
DIRECT_SOURCE = "d"

REFERENCE_PATTERN = re.compile(
    r"<" + TAG_NAME
    + r'\s+k="([^"]+)"'
    + r'\s+v="([^"]+)"'
    + r'(?:\s+i="(\d+)")?'
    + r'(?:\s+o="([^"]+)")?'
    + r'(?:\s+s="([^"]+)")?'
    + r"\s*/>"
)


@dataclass(frozen=True)
class ReferenceMatch:
    """A decoded reference and the span of its tag in the manifest text."""

    reference: Reference
    start: int
    end: int


def _check_attribute(name: str, value: str) -> None:
    if not value:
        raise ValidationError(f"Reference attribute {name} cannot be empty")
    if '"' in value or "<" in value or ">" in value:
        raise ValidationError(f"Reference attribute {name} contains a reserved character: {value!r}")


class ManifestCodec:
    """Encodes and decodes manifest text."""

    @staticmethod
    def encode_reference(reference: Reference) -> str:
        """
        Encode a single reference as a tag.

        Args:
            reference: Reference to encode

        Returns:
            Tag string with attributes in k, v, i, o, s order
        """
        _check_attribute("k", reference.hash)
        _check_attribute("v", reference.version)

        parts = [f'<{TAG_NAME} k="{reference.hash}" v="{reference.version}"']
        if reference.index is not None:
            if reference.index < 0:
                raise ValidationError(f"Reference index must be >= 0, got {reference.index}")
            parts.append(f' i="{reference.index}"')
        if reference.operator is not None:
            _check_attribute("o", reference.operator)
            parts.append(f' o="{reference.operator.lower()}"')
        if reference.source is not None:
            _check_attribute("s", reference.source)
            parts.append(f' s="{reference.source}"')
        parts.append(" />")
        return "".join(parts)

    @staticmethod
    def encode(references: Iterable[Reference]) -> str:
        """Encode references as concatenated tags, preserving order."""
        return "".join(ManifestCodec.encode_reference(ref) for ref in references)

    @staticmethod
    def find_references(text: str) -> List[ReferenceMatch]:
        """
        Locate every well-formed reference tag in text.

        Returns:
            ReferenceMatch objects in encounter order
        """
        matches = []
        for match in REFERENCE_PATTERN.finditer(text):
            hash_value, version, index, operator, source = match.groups()
            reference = Reference(
                hash=hash_value,
                version=version,
                index=int(index) if index is not None else None,
                operator=operator,
                source=source,
            )
            matches.append(ReferenceMatch(reference, match.start(), match.end()))
        return matches

    @staticmethod
    def decode(text: str) -> List[Reference]:
        """Decode all references in text, in encounter order."""
        return [match.reference for match in ManifestCodec.find_references(text)]

    @staticmethod
    def detect(text: str) -> bool:
        """Return True iff text contains at least one well-formed reference tag."""
        return REFERENCE_PATTERN.search(text) is not None


def generate_manifest(
    hashes: Iterable[str],
    index: Optional[int],
    operator: str,
    source: Optional[str] = None,
    version: str = DEFAULT_VERSION,
) -> str:
    """
    Build a manifest referencing each hash under the same owner and index.

    Args:
        hashes: Leaf keys in payload order
        index: Historical index to pin (0 for a first write), or None for latest
        operator: Owner the leaves are stored under
        source: None for the chunked store, "d" for the direct store
        version: Reference format version tag

    Returns:
        Manifest text
    """
    return ManifestCodec.encode(
        Reference(hash=h, version=version, index=index, operator=operator, source=source)
        for h in hashes
    )


def resolve_owner(reference: Reference, default_owner: str) -> str:
    """Owner a reference points into: its operator, else the default."""
    return (reference.operator or default_owner).lower()


def reference_key(reference: Reference, default_owner: str) -> str:
    """
    Cycle-guard key for a reference: "<hash>-<owner>" plus "-<index>" if pinned.
    """
    owner = resolve_owner(reference, default_owner)
    suffix = f"-{reference.index}" if reference.index is not None else ""
    return f"{reference.hash}-{owner}{suffix}"
