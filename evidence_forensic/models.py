"""
Pydantic data models for evidence forensic analysis.

This module defines the records that flow between the scorer, the recovery
ledger, the mesh packet protocol and the analysis orchestrator. Records that
are hashed (ledger entries, mesh packets) expose a ``canonical payload`` with
a fixed key order; that payload is what gets signed and verified.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from evidence_forensic import __version__
from evidence_forensic.utils.canonical import canonical_sha512
from evidence_forensic.utils.hashing import digests_match, truncate

# Rule categories in scoring order
RULE_CATEGORIES: Tuple[str, ...] = (
    "keywords",
    "entities",
    "evasion",
    "contradictions",
    "concealment",
    "financial",
)

# Closed set of directive flags exchanged between installations
DIRECTIVE_KEYS: Tuple[str, ...] = (
    "prioritize_contradictions",
    "prioritize_concealment",
    "tighten_evasion_threshold",
    "reinforce_financial_flags",
    "min_keywords_entities",
)

# Fixed key order of the hashed ledger payload
LEDGER_PAYLOAD_FIELDS: Tuple[str, ...] = (
    "case_id",
    "fraud_amount",
    "fraud_amount_usd",
    "currency",
    "party_name",
    "party_jurisdiction",
    "source_sha512",
    "detected_at",
    "detected_by",
)

GENERAL_RISK = "General risk"

DEFAULT_MESH_SCHEMA = "evidence.mesh.v1"
DEFAULT_TEMPLATE_VERSION = "1.0"
DEFAULT_APP_VERSION = f"v{__version__}"

UTC_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Return an ISO-8601 UTC timestamp at second precision (``...Z``)."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime(UTC_TIMESTAMP_FORMAT)


# =============================================================================
# Asset integrity
# =============================================================================

class IntegrityStatus(str, Enum):
    """Outcome of checking a single asset against the manifest."""
    OK = "OK"
    TAMPERED = "TAMPERED"
    UNREADABLE = "UNREADABLE"


class AssetCheckResult(BaseModel):
    """Integrity verdict for one manifest entry."""

    DISPLAY_CHARS: ClassVar[int] = 12

    asset_path: str = Field(..., description="Logical asset path from the manifest")
    status: IntegrityStatus
    expected_sha512: Optional[str] = Field(None, description="Expected digest (full)")
    actual_sha512: Optional[str] = Field(None, description="Computed digest (full)")
    reason: Optional[str] = Field(None, description="Why the asset could not be checked")

    @property
    def expected_prefix(self) -> str:
        return truncate(self.expected_sha512, self.DISPLAY_CHARS)

    @property
    def actual_prefix(self) -> str:
        return truncate(self.actual_sha512, self.DISPLAY_CHARS)

    def describe(self) -> str:
        """Single-line description with a status marker."""
        if self.status == IntegrityStatus.OK:
            return "[OK] Verified"
        if self.status == IntegrityStatus.TAMPERED:
            return (
                f"[FAIL] Tampered! Expected: {self.expected_prefix}... "
                f"Actual: {self.actual_prefix}..."
            )
        return f"[WARN] Missing or unreadable ({self.reason})"


class IntegrityCheckResult(BaseModel):
    """Per-asset verdicts for a whole manifest, in manifest order."""

    results: Dict[str, AssetCheckResult] = Field(default_factory=dict)
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def all_ok(self) -> bool:
        return bool(self.results) and all(
            r.status == IntegrityStatus.OK for r in self.results.values()
        )

    @property
    def tampered(self) -> List[str]:
        return [p for p, r in self.results.items() if r.status == IntegrityStatus.TAMPERED]

    @property
    def unreadable(self) -> List[str]:
        return [p for p, r in self.results.items() if r.status == IntegrityStatus.UNREADABLE]

    def summary(self) -> Dict[str, str]:
        """Map of asset path to status value (for audit logging)."""
        return {path: result.status.value for path, result in self.results.items()}


# =============================================================================
# Rule-based scoring
# =============================================================================

class DetectionRuleSet(BaseModel):
    """Six categorized pattern lists. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    keywords: Tuple[str, ...] = ()
    entities: Tuple[str, ...] = ()
    evasion: Tuple[str, ...] = ()
    contradictions: Tuple[str, ...] = ()
    concealment: Tuple[str, ...] = ()
    financial: Tuple[str, ...] = ()
    source: str = Field(default="builtin", description="Where the rules were loaded from")

    def patterns(self, category: str) -> Tuple[str, ...]:
        """Return the patterns for one category."""
        if category not in RULE_CATEGORIES:
            raise KeyError(f"Unknown rule category: {category}")
        return getattr(self, category)


class ScoreDiagnostics(BaseModel):
    """Per-category match counts with the derived score and liabilities."""

    keywords: int = Field(default=0, ge=0)
    entities: int = Field(default=0, ge=0)
    evasion: int = Field(default=0, ge=0)
    contradictions: int = Field(default=0, ge=0)
    concealment: int = Field(default=0, ge=0)
    financial: int = Field(default=0, ge=0)

    risk_score: float = Field(default=0.0, ge=0.0, le=1.0)
    liabilities: List[str] = Field(default_factory=lambda: [GENERAL_RISK], min_length=1)

    # "No risk found" and "detection could not run" must never look alike
    scoring_failed: bool = Field(default=False)
    failure_reason: Optional[str] = None
    rules_source: Optional[str] = None

    def counts(self) -> Dict[str, int]:
        """Category counts in scoring order."""
        return {category: getattr(self, category) for category in RULE_CATEGORIES}


class DirectiveFlags(BaseModel):
    """The five boolean tuning flags exchanged through mesh packets."""

    prioritize_contradictions: bool = False
    prioritize_concealment: bool = False
    tighten_evasion_threshold: bool = False
    reinforce_financial_flags: bool = False
    min_keywords_entities: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "DirectiveFlags":
        """
        Read known flags from an untyped mapping.

        Unknown keys are ignored. A flag is set only by ``true`` or the
        string ``"true"``; anything else (missing, null, numbers) is False.
        """
        if not isinstance(data, Mapping):
            return cls()

        values = {}
        for key in DIRECTIVE_KEYS:
            raw = data.get(key, False)
            if isinstance(raw, str):
                values[key] = raw.strip().lower() == "true"
            else:
                values[key] = raw is True
        return cls(**values)

    def merge(self, other: "DirectiveFlags") -> "DirectiveFlags":
        """Per-flag logical OR. Idempotent and commutative."""
        return DirectiveFlags(**{
            key: getattr(self, key) or getattr(other, key) for key in DIRECTIVE_KEYS
        })

    def as_dict(self) -> Dict[str, bool]:
        return {key: getattr(self, key) for key in DIRECTIVE_KEYS}

    def raised(self) -> List[str]:
        """Names of flags that are set."""
        return [key for key in DIRECTIVE_KEYS if getattr(self, key)]


class Directive(BaseModel):
    """Output of a directive synthesizer: a risk boost plus tuning flags."""

    risk_weight_boost: float = Field(default=0.0, ge=0.0)
    flags: DirectiveFlags = Field(default_factory=DirectiveFlags)
    hints: List[str] = Field(default_factory=list)


# =============================================================================
# Recovery ledger
# =============================================================================

class LedgerEntry(BaseModel):
    """One business-fraud finding in the recovery ledger."""

    case_id: str
    fraud_amount: float
    fraud_amount_usd: float
    currency: str
    party_name: str
    party_jurisdiction: str
    source_sha512: str
    detected_at: str = Field(..., description="UTC, second precision, YYYY-MM-DDTHH:MM:SSZ")
    detected_by: str = Field(..., description="Scorer/app version string")
    entry_sha512: str = Field(default="", description="SHA-512 over the canonical payload")
    sealed_document: Optional[str] = Field(None, description="Reference to the sealed attestation")

    def canonical_payload(self) -> Dict[str, Any]:
        """The hashed payload, in the fixed ledger key order."""
        return {name: getattr(self, name) for name in LEDGER_PAYLOAD_FIELDS}

    def compute_sha512(self) -> str:
        return canonical_sha512(self.canonical_payload())

    def to_record(self) -> Dict[str, Any]:
        """The ledger line content: payload followed by ``entry_sha512``."""
        record = self.canonical_payload()
        record["entry_sha512"] = self.entry_sha512
        return record

    def is_valid(self) -> bool:
        return digests_match(self.entry_sha512, self.compute_sha512())


class LedgerLineFailure(BaseModel):
    """A ledger line that failed verification."""

    line_number: int = Field(..., ge=1)
    reason: str


class LedgerVerification(BaseModel):
    """Result of re-verifying every line of a ledger file."""

    ledger_path: str
    total_entries: int = 0
    valid_entries: int = 0
    failures: List[LedgerLineFailure] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.failures


# =============================================================================
# Mesh packets
# =============================================================================

class MeshStats(BaseModel):
    """Aggregate statistics carried in a mesh packet."""

    risk_score: float = 0.0
    contradictions: int = 0
    concealment: int = 0
    evasion: int = 0
    financial: int = 0
    keywords: int = 0
    entities: int = 0

    @classmethod
    def from_diagnostics(cls, diagnostics: ScoreDiagnostics) -> "MeshStats":
        return cls(
            risk_score=diagnostics.risk_score,
            **diagnostics.counts(),
        )


class ForensicSummary(BaseModel):
    """Report summary optionally attached to a transported packet."""

    evidence_hash: Optional[str] = None
    risk_score: float = 0.0
    jurisdiction: str = "UNKNOWN"
    blockchain_anchor: Optional[str] = None
    top_liabilities: List[str] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: "ForensicReport") -> "ForensicSummary":
        return cls(
            evidence_hash=report.evidence_hash,
            risk_score=report.risk_score,
            jurisdiction=report.jurisdiction,
            blockchain_anchor=report.blockchain_anchor,
            top_liabilities=list(report.top_liabilities),
        )


class MeshPacket(BaseModel):
    """Signed interchange unit carrying directives and aggregate stats."""

    schema_id: str = DEFAULT_MESH_SCHEMA
    template_version: str = DEFAULT_TEMPLATE_VERSION
    app_version: str = DEFAULT_APP_VERSION
    timestamp_utc: str
    directives: DirectiveFlags = Field(default_factory=DirectiveFlags)
    stats: MeshStats = Field(default_factory=MeshStats)
    forensic_report: Optional[ForensicSummary] = None
    ledger_entry: Optional[LedgerEntry] = None
    sha512: Optional[str] = None

    def signing_payload(self) -> Dict[str, Any]:
        """Every field except ``sha512``, in wire order."""
        payload: Dict[str, Any] = {
            "schema": self.schema_id,
            "templateVersion": self.template_version,
            "appVersion": self.app_version,
            "timestampUtc": self.timestamp_utc,
            "directives": self.directives.as_dict(),
            "stats": self.stats.model_dump(),
        }
        if self.forensic_report is not None:
            payload["forensic_report"] = self.forensic_report.model_dump()
        if self.ledger_entry is not None:
            payload["ledger_entry"] = self.ledger_entry.to_record()
        return payload

    def signed_document(self) -> Dict[str, Any]:
        """Signing payload with the ``sha512`` field appended."""
        if not self.sha512:
            raise ValueError("Packet has not been signed")
        document = self.signing_payload()
        document["sha512"] = self.sha512
        return document

    @property
    def file_name(self) -> str:
        stamp = re.sub(r"[:\-T]", "", self.timestamp_utc)
        return f"mesh_{stamp}.json"


class PacketStatus(str, Enum):
    """Verification outcome of an incoming packet."""
    VERIFIED = "VERIFIED"
    TAMPERED = "TAMPERED"
    MALFORMED = "MALFORMED"


class PacketVerification(BaseModel):
    """Explicit verification result for an incoming packet."""

    status: PacketStatus
    claimed_sha512: Optional[str] = None
    computed_sha512: Optional[str] = None
    directives: Optional[DirectiveFlags] = None
    reason: Optional[str] = None
    applied: bool = Field(default=False, description="Flags were merged into local state")

    @property
    def verified(self) -> bool:
        return self.status == PacketStatus.VERIFIED


# =============================================================================
# Analysis report
# =============================================================================

class ForensicReport(BaseModel):
    """Complete result of analyzing one evidence file."""

    file_name: str
    evidence_hash: Optional[str] = Field(None, description="SHA-512 of the file; None if hashing failed")
    risk_score: float = Field(default=0.0, ge=0.0, le=1.0)
    jurisdiction: str = "UNKNOWN"
    top_liabilities: List[str] = Field(default_factory=list)
    blockchain_anchor: Optional[str] = None
    behavioral_profile: ScoreDiagnostics = Field(default_factory=ScoreDiagnostics)
    directive: Directive = Field(default_factory=Directive)
    ledger_entry: Optional[LedgerEntry] = None
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    analyzer_version: str = __version__
    analysis_errors: List[Dict[str, str]] = Field(default_factory=list)

    @field_validator("evidence_hash")
    @classmethod
    def validate_evidence_hash(cls, v: Optional[str]) -> Optional[str]:
        """Validate SHA-512 hash format."""
        if v is None:
            return v
        if len(v) != 128 or not all(c in "0123456789abcdefABCDEF" for c in v):
            raise ValueError("Evidence hash must be 128 hexadecimal characters")
        return v.lower()

    @property
    def degraded(self) -> bool:
        """True when any step fell back to a default instead of completing."""
        return bool(self.analysis_errors) or self.behavioral_profile.scoring_failed
