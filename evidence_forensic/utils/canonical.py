"""
Canonical JSON serialization for signed records.

Ledger entries and mesh packets are hashed over the output of
``canonical_json``. Verification must re-serialize with the same function:

- keys keep their insertion order (records define a fixed field order)
- compact separators, no incidental whitespace
- UTF-8 text, non-ASCII characters emitted as-is
- NaN and Infinity are rejected
"""

import json
from typing import Any, Mapping

from evidence_forensic.utils.hashing import sha512_hex


def canonical_json(payload: Mapping[str, Any]) -> str:
    """Serialize a mapping to its canonical JSON text."""
    return json.dumps(
        payload,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def canonical_bytes(payload: Mapping[str, Any]) -> bytes:
    """Return the UTF-8 encoding of ``canonical_json(payload)``."""
    return canonical_json(payload).encode("utf-8")


def canonical_sha512(payload: Mapping[str, Any]) -> str:
    """Hash a mapping over its canonical serialization."""
    return sha512_hex(canonical_bytes(payload))


def pretty_json(payload: Mapping[str, Any]) -> str:
    """Human-readable rendering used for packet files; never hashed."""
    return json.dumps(payload, ensure_ascii=False, indent=2, allow_nan=False)
