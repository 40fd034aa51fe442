"""
Utility modules for evidence forensic analysis.

This package contains shared utilities including custom exceptions,
SHA-512 hashing, canonical JSON serialization and audit logging.
"""

from evidence_forensic.utils.audit import AuditLevel, AuditLogger
from evidence_forensic.utils.canonical import canonical_json, canonical_sha512, pretty_json
from evidence_forensic.utils.exceptions import (
    ConfigError,
    EvidenceForensicError,
    EvidenceIOError,
    IntegrityError,
    ManifestError,
    ParseError,
    RuleLoadFailure,
    SealingError,
    TransportError,
)
from evidence_forensic.utils.hashing import (
    digests_match,
    sha512_file,
    sha512_hex,
    truncate,
)

__all__ = [
    # Exceptions
    "EvidenceForensicError",
    "EvidenceIOError",
    "IntegrityError",
    "ParseError",
    "RuleLoadFailure",
    "SealingError",
    "ManifestError",
    "TransportError",
    "ConfigError",
    # Hashing
    "sha512_hex",
    "sha512_file",
    "truncate",
    "digests_match",
    # Canonical serialization
    "canonical_json",
    "canonical_sha512",
    "pretty_json",
    # Audit Logging
    "AuditLevel",
    "AuditLogger",
]
