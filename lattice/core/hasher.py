"""Canonical hashing helpers for fingerprints and checksums.

Fingerprints let a module detect that its outputs were produced from
inputs that have since changed, without re-reading them on every run.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: sorted keys, compact separators, UTF-8."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def checksum(body: bytes | str) -> str:
    """``sha256:<hex>`` checksum of an artifact body."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return f"sha256:{sha256_hex(body)}"


def fingerprint(payload: dict[str, Any]) -> str:
    """Fingerprint a JSON-serializable mapping.

    Key order does not matter:

    >>> fingerprint({"a": 1, "b": 2}) == fingerprint({"b": 2, "a": 1})
    True
    """
    return sha256_hex(canonical_json_bytes(payload))
