"""Main forensic analyzer for evidence files.

This module composes the analysis workflow for a single file:
hash -> rule scoring -> directive boost -> jurisdiction and anchor lookups
-> optional recovery-ledger entry for a business-fraud finding.

Degraded steps never abort the analysis; each one is recorded in
``ForensicReport.analysis_errors``. Only a sealing failure propagates.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from evidence_forensic import __version__
from evidence_forensic.analysis.directives import (
    DirectiveSynthesizer,
    ThresholdDirectiveSynthesizer,
)
from evidence_forensic.analysis.lexicon import AssetRuleSource, FileRuleSource, RuleSource
from evidence_forensic.analysis.risk import RiskScorer
from evidence_forensic.config import ForensicConfig
from evidence_forensic.core.assets import PackageAssetStore
from evidence_forensic.core.ledger import EvidenceLedger, SealingService
from evidence_forensic.core.services import (
    AnchorService,
    CurrencyConverter,
    FraudExtraction,
    FraudExtractor,
    JurisdictionProvider,
    StaticJurisdictionProvider,
    StubAnchorService,
    load_default_converter,
)
from evidence_forensic.models import Directive, ForensicReport, LedgerEntry, ScoreDiagnostics
from evidence_forensic.utils.audit import AuditLogger
from evidence_forensic.utils.exceptions import EvidenceIOError
from evidence_forensic.utils.hashing import sha512_file

logger = logging.getLogger(__name__)

UNKNOWN_JURISDICTION = "UNKNOWN"


def default_rule_source(config: ForensicConfig) -> RuleSource:
    """External rule file when configured, otherwise the bundled rules."""
    if config.rules_path:
        return FileRuleSource(config.rules_path)
    return AssetRuleSource(PackageAssetStore())


class ForensicAnalyzer:
    """Runs the full analysis workflow for one evidence file at a time."""

    def __init__(
        self,
        config: Optional[ForensicConfig] = None,
        scorer: Optional[RiskScorer] = None,
        rule_source: Optional[RuleSource] = None,
        synthesizer: Optional[DirectiveSynthesizer] = None,
        ledger: Optional[EvidenceLedger] = None,
        sealing_service: Optional[SealingService] = None,
        jurisdiction_provider: Optional[JurisdictionProvider] = None,
        anchor_service: Optional[AnchorService] = None,
        currency_converter: Optional[CurrencyConverter] = None,
        fraud_extractor: Optional[FraudExtractor] = None,
        audit_logger: Optional[AuditLogger] = None,
        progress_callback: Optional[Callable[[str, str, str], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the forensic analyzer.

        Args:
            config: Toolkit configuration (defaults apply when omitted)
            scorer: Risk scorer; one instance keeps its loaded rules
            rule_source: Where the scorer loads rules from on first use
            synthesizer: Directive synthesizer applied to the diagnostics
            ledger: Recovery ledger for business-fraud findings
            sealing_service: Seals the ledger after each append
            jurisdiction_provider: Jurisdiction code lookup
            anchor_service: Blockchain anchor lookup
            currency_converter: USD normalization for ledger amounts
            fraud_extractor: Supplies party/amount findings; no ledger entry without one
            audit_logger: Forensic audit trail
            progress_callback: Called as ``(step, status, message)``
            clock: Returns the current UTC time (injectable for tests)
        """
        self.config = config or ForensicConfig()
        self.scorer = scorer or RiskScorer()
        self.rule_source = rule_source or default_rule_source(self.config)
        self.synthesizer = synthesizer or ThresholdDirectiveSynthesizer()
        self.audit_logger = audit_logger
        self.ledger = ledger or EvidenceLedger(self.config.ledger_path, audit_logger=audit_logger)
        self.sealing_service = sealing_service
        self.jurisdiction_provider = jurisdiction_provider or StaticJurisdictionProvider(
            self.config.default_jurisdiction
        )
        self.anchor_service = anchor_service or StubAnchorService()
        self._currency_converter = currency_converter
        self.fraud_extractor = fraud_extractor
        self._progress_callback = progress_callback
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._analysis_errors: List[Dict[str, Any]] = []

    @property
    def currency_converter(self) -> Optional[CurrencyConverter]:
        """Bundled converter, loaded on first use."""
        if self._currency_converter is None:
            self._currency_converter = load_default_converter()
        return self._currency_converter

    def _report_progress(self, step: str, status: str, message: str) -> None:
        """Report progress to callback if registered.

        Args:
            step: Current analysis step name
            status: "start", "complete", "skip", "error"
            message: Human-readable description
        """
        if self._progress_callback:
            try:
                self._progress_callback(step, status, message)
            except Exception as e:
                self._record_error("progress_callback", e, step=step)

    def _record_error(self, operation: str, error: Union[Exception, str], **extra: str) -> None:
        if isinstance(error, Exception):
            entry = {
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        else:
            entry = {"operation": operation, "error_type": "Degraded", "error_message": error}
        entry.update(extra)
        entry["timestamp"] = self._clock().isoformat()
        self._analysis_errors.append(entry)
        logger.warning(f"{operation}: {entry['error_message']}")

    def new_case_id(self) -> str:
        return f"CASE-{int(self._clock().timestamp() * 1000)}"

    def score(self, file_path: Union[str, Path]) -> ScoreDiagnostics:
        """Score a file's text without hashing or recording anything."""
        self.scorer.ensure_loaded(self.rule_source)
        return self.scorer.analyze_file(file_path)

    def analyze(self, file_path: Union[str, Path], case_id: Optional[str] = None) -> ForensicReport:
        """Perform complete forensic analysis on an evidence file.

        Args:
            file_path: File to analyze
            case_id: Case identifier for a ledger entry; generated when omitted

        Returns:
            ForensicReport; degraded steps are listed in ``analysis_errors``

        Raises:
            SealingError: If a ledger entry was written but could not be sealed
        """
        file_path = Path(file_path)
        self._analysis_errors = []
        case_id = case_id or self.new_case_id()

        # Hash
        self._report_progress("hash", "start", "Computing SHA-512")
        evidence_hash: Optional[str] = None
        try:
            evidence_hash = sha512_file(file_path)
            self._report_progress("hash", "complete", evidence_hash[:16])
        except EvidenceIOError as e:
            self._record_error("hash", e)
            self._report_progress("hash", "error", e.reason)

        # Rules and scoring
        self._report_progress("score", "start", "Scoring against detection rules")
        self.scorer.ensure_loaded(self.rule_source)
        if self.scorer.load_error:
            self._record_error("rule_load", f"built-in rules in use: {self.scorer.load_error}")

        diagnostics = self.scorer.analyze_file(file_path)
        if diagnostics.scoring_failed:
            self._record_error("score", diagnostics.failure_reason or "scoring failed")
            self._report_progress("score", "error", diagnostics.failure_reason or "")
        else:
            self._report_progress("score", "complete", f"{diagnostics.risk_score:.2f}")

        # Directive boost
        try:
            directive = self.synthesizer.synthesize(diagnostics)
        except Exception as e:
            self._record_error("directive", e)
            directive = Directive()
        risk_score = min(1.0, diagnostics.risk_score + directive.risk_weight_boost)

        # Lookups
        try:
            jurisdiction = self.jurisdiction_provider.current_code() or UNKNOWN_JURISDICTION
        except Exception as e:
            self._record_error("jurisdiction", e)
            jurisdiction = UNKNOWN_JURISDICTION

        try:
            blockchain_anchor = self.anchor_service.anchor(evidence_hash)
        except Exception as e:
            self._record_error("anchor", e)
            blockchain_anchor = None

        # Recovery ledger
        ledger_entry = self._record_finding(file_path, case_id, evidence_hash)

        report = ForensicReport(
            file_name=file_path.name,
            evidence_hash=evidence_hash,
            risk_score=risk_score,
            jurisdiction=jurisdiction,
            top_liabilities=list(diagnostics.liabilities),
            blockchain_anchor=blockchain_anchor,
            behavioral_profile=diagnostics,
            directive=directive,
            ledger_entry=ledger_entry,
            analyzed_at=self._clock(),
            analyzer_version=__version__,
            analysis_errors=[
                {key: str(value) for key, value in error.items()} for error in self._analysis_errors
            ],
        )

        if self.audit_logger:
            self.audit_logger.log_analysis(
                evidence_hash,
                report.file_name,
                report.risk_score,
                report.top_liabilities,
                scoring_failed=diagnostics.scoring_failed,
            )

        self._report_progress("analysis", "complete", f"Risk score {report.risk_score:.2f}")
        return report

    def _extract_finding(self, file_path: Path) -> Optional[FraudExtraction]:
        if self.fraud_extractor is None:
            return None
        try:
            return self.fraud_extractor.extract(file_path)
        except Exception as e:
            self._record_error("fraud_extraction", e)
            return None

    def _record_finding(
        self,
        file_path: Path,
        case_id: str,
        evidence_hash: Optional[str],
    ) -> Optional[LedgerEntry]:
        finding = self._extract_finding(file_path)
        if finding is None or not finding.has_amount:
            self._report_progress("ledger", "skip", "No fraud finding")
            return None

        if not self.ledger.business_predicate(finding.party_name):
            self._report_progress("ledger", "skip", "Party is not a business")
            if self.audit_logger:
                self.audit_logger.log_ledger_skip(case_id, finding.party_name)
            return None

        if evidence_hash is None:
            self._record_error("ledger", "entry not recorded: evidence hash unavailable")
            return None

        converter = self.currency_converter
        if converter is None:
            self._record_error("ledger", "entry not recorded: currency conversion unavailable")
            return None

        try:
            amount_usd = converter.to_usd(finding.currency, finding.amount)
        except ValueError as e:
            self._record_error("currency", e)
            return None

        self._report_progress("ledger", "start", f"Recording finding against {finding.party_name}")
        try:
            entry = self.ledger.record(
                case_id=case_id,
                amount=finding.amount,
                amount_usd=amount_usd,
                currency=finding.currency,
                party_name=finding.party_name,
                party_jurisdiction=finding.party_jurisdiction or UNKNOWN_JURISDICTION,
                source_sha512=evidence_hash,
                app_version=self.config.app_version,
                sealing_service=self.sealing_service,
            )
        except EvidenceIOError as e:
            self._record_error("ledger", e)
            return None

        if entry is not None:
            self._report_progress("ledger", "complete", entry.entry_sha512[:16])
        return entry


def analyze_file(file_path: Union[str, Path], config: Optional[ForensicConfig] = None) -> ForensicReport:
    """Convenience function to analyze a file with default collaborators.

    Args:
        file_path: Path to the evidence file
        config: Optional toolkit configuration

    Returns:
        ForensicReport
    """
    analyzer = ForensicAnalyzer(config=config)
    return analyzer.analyze(file_path)
