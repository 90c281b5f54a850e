"""Configuration loading: JSON file plus CHUNKLEDGER_* environment overrides."""

import json
import os
from dataclasses import fields
from pathlib import Path
from typing import Mapping, Optional, Union

from chunkledger.core.contracts import Config
from chunkledger.core.errors import ValidationError

ENV_PREFIX = "CHUNKLEDGER_"

_INT_FIELDS = {
    "segment_size",
    "binary_segment_size",
    "chunk_size",
    "max_chunks",
    "max_direct_value_size",
    "gzip_level",
    "zstd_level",
    "batch_size",
    "max_depth",
}


def _coerce(name: str, raw: str):
    if name in _INT_FIELDS:
        try:
            return int(raw)
        except ValueError:
            raise ValidationError(f"{ENV_PREFIX}{name.upper()} must be an integer, got {raw!r}")
    if name == "fetch_timeout":
        if raw.strip().lower() in ("", "none"):
            return None
        try:
            return float(raw)
        except ValueError:
            raise ValidationError(f"{ENV_PREFIX}FETCH_TIMEOUT must be a number, got {raw!r}")
    return raw


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Build a validated Config.

    Values come from the dataclass defaults, then the JSON file at `path`
    (if given), then environment variables such as CHUNKLEDGER_BATCH_SIZE.

    Args:
        path: Optional JSON config file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Config
    """
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(Config)}
    values = {}

    if path is not None:
        with open(path, "r") as f:
            file_values = json.load(f)
        unknown = set(file_values) - known
        if unknown:
            raise ValidationError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        values.update(file_values)

    for name in known:
        env_name = ENV_PREFIX + name.upper()
        if env_name in environ:
            values[name] = _coerce(name, environ[env_name])

    config = Config(**values)
    config.validate()
    return config
