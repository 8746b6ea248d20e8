"""
Parameter-keyed cache for pipeline stage outputs.

A stage is considered fresh only when all of its outputs exist and the
sidecar key file next to the first output records the same key, so changed
inputs or parameters trigger recomputation.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".cache.json"


def _sidecar(outputs: list[Path]) -> Path:
    first = Path(outputs[0])
    return first.with_name(first.name + SIDECAR_SUFFIX)


def cache_key(params: dict, inputs: Iterable[str | Path] = ()) -> str:
    """
    Hash stage parameters together with the identity of its input files.

    Args:
        params: JSON-serializable stage parameters
        inputs: Input files; path, size and mtime are part of the key

    Returns:
        Hex SHA-256 digest
    """
    fingerprint = {"params": params, "inputs": []}
    for path in inputs:
        stat = Path(path).stat()
        fingerprint["inputs"].append({
            "path": str(Path(path).resolve()),
            "size": stat.st_size,
            "mtime_ns": stat.st_mtime_ns,
        })

    payload = json.dumps(fingerprint, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def is_fresh(outputs: list[str | Path], key: str) -> bool:
    """True if every output exists and was produced under ``key``."""
    outputs = [Path(p) for p in outputs]
    if not all(p.exists() for p in outputs):
        return False

    sidecar = _sidecar(outputs)
    if not sidecar.exists():
        logger.info(f"No cache key for {outputs[0]}, recomputing")
        return False

    recorded = json.loads(sidecar.read_text()).get("key")
    if recorded != key:
        logger.info(f"Cache key changed for {outputs[0]}, recomputing")
        return False
    return True


def record(outputs: list[str | Path], key: str) -> None:
    """Write the sidecar key after a stage has written its outputs."""
    outputs = [Path(p) for p in outputs]
    sidecar = _sidecar(outputs)
    with open(sidecar, "w") as f:
        json.dump({"key": key, "outputs": [str(p) for p in outputs]}, f, indent=2)


def has_record(outputs: list[str | Path]) -> bool:
    """True if every output exists and a key was recorded for them."""
    outputs = [Path(p) for p in outputs]
    return all(p.exists() for p in outputs) and _sidecar(outputs).exists()
