"""Tests for core forensic analyzer."""

import hashlib
import json
from unittest.mock import MagicMock

import pytest

from evidence_forensic.analysis.lexicon import AssetRuleSource, FileRuleSource
from evidence_forensic.core.analyzer import ForensicAnalyzer, analyze_file, default_rule_source
from evidence_forensic.core.ledger import EvidenceLedger
from evidence_forensic.core.services import CurrencyConverter, ManualFraudExtraction
from evidence_forensic.models import ForensicReport
from evidence_forensic.utils.exceptions import SealingError


def make_analyzer(config, fixed_clock, audit_logger=None, **kwargs):
    ledger = EvidenceLedger(config.ledger_path, audit_logger=audit_logger, clock=fixed_clock)
    return ForensicAnalyzer(
        config=config,
        ledger=ledger,
        audit_logger=audit_logger,
        clock=fixed_clock,
        **kwargs,
    )


class TestForensicAnalyzer:
    """Tests for ForensicAnalyzer.analyze."""

    def test_analyze_risky_file(self, config, fixed_clock, risky_file):
        """Test the complete workflow on a file full of indicators."""
        analyzer = make_analyzer(config, fixed_clock)
        report = analyzer.analyze(risky_file)

        assert isinstance(report, ForensicReport)
        assert report.file_name == "statement.txt"
        assert report.evidence_hash == hashlib.sha512(risky_file.read_bytes()).hexdigest()
        assert report.risk_score == 1.0
        assert report.top_liabilities[0] == "Contradictions in statements"
        assert report.behavioral_profile.rules_source == "asset:rules/detection_rules.json"
        assert report.analysis_errors == []
        assert report.ledger_entry is None

    def test_directive_boost_applied(self, config, fixed_clock, financial_file):
        """Test that the directive boost is added to the scored risk."""
        report = make_analyzer(config, fixed_clock).analyze(financial_file)

        assert report.behavioral_profile.risk_score == pytest.approx(0.17)
        assert report.directive.risk_weight_boost == pytest.approx(0.02)
        assert report.risk_score == pytest.approx(0.19)

    def test_benign_file(self, config, fixed_clock, benign_file):
        report = make_analyzer(config, fixed_clock).analyze(benign_file)
        assert report.risk_score == 0.0
        assert report.top_liabilities == ["General risk"]
        assert not report.degraded

    def test_jurisdiction_and_anchor(self, config, fixed_clock, benign_file):
        config = config.model_copy(update={"default_jurisdiction": "ZA"})
        report = make_analyzer(config, fixed_clock).analyze(benign_file)
        assert report.jurisdiction == "ZA"
        assert report.blockchain_anchor == f"anchor-stub://sha512/{report.evidence_hash}"

    def test_analyzed_at_from_clock(self, config, fixed_clock, benign_file):
        report = make_analyzer(config, fixed_clock).analyze(benign_file)
        assert report.analyzed_at == fixed_clock()

    def test_missing_file_degrades(self, config, fixed_clock, tmp_path):
        """Test that an unreadable file yields a degraded report, not an exception."""
        report = make_analyzer(config, fixed_clock).analyze(tmp_path / "missing.txt")

        assert report.evidence_hash is None
        assert report.blockchain_anchor is None
        assert report.risk_score == 0.0
        assert report.behavioral_profile.scoring_failed
        assert report.top_liabilities[0].startswith("Rules engine error: ")
        operations = [e["operation"] for e in report.analysis_errors]
        assert operations == ["hash", "score"]

    def test_rule_load_failure_recorded(self, config, fixed_clock, risky_file, tmp_path):
        config = config.model_copy(update={"rules_path": tmp_path / "missing_rules.json"})
        analyzer = make_analyzer(config, fixed_clock)

        report = analyzer.analyze(risky_file)
        assert report.behavioral_profile.rules_source == "builtin"
        assert report.risk_score == 1.0
        assert report.analysis_errors[0]["operation"] == "rule_load"

        again = analyzer.analyze(risky_file)
        assert again.analysis_errors[0]["operation"] == "rule_load"

    def test_rule_source_exception_absorbed(self, config, fixed_clock, risky_file):
        source = MagicMock()
        source.name = "broken"
        source.load.side_effect = RuntimeError("source exploded")

        report = make_analyzer(config, fixed_clock, rule_source=source).analyze(risky_file)

        assert report.risk_score == 1.0
        assert report.analysis_errors[0]["operation"] == "rule_load"
        assert "source exploded" in report.analysis_errors[0]["error_message"]

    def test_external_rules_used(self, config, fixed_clock, benign_file, tmp_path):
        rules = tmp_path / "rules.yaml"
        rules.write_text("keywords:\n  - weather\n", encoding="utf-8")
        config = config.model_copy(update={"rules_path": rules})

        report = make_analyzer(config, fixed_clock).analyze(benign_file)
        assert report.behavioral_profile.keywords == 1
        assert report.risk_score == pytest.approx(0.05)

    def test_synthesizer_failure_recorded(self, config, fixed_clock, risky_file):
        synthesizer = MagicMock()
        synthesizer.synthesize.side_effect = RuntimeError("model offline")

        report = make_analyzer(config, fixed_clock, synthesizer=synthesizer).analyze(risky_file)

        assert report.directive.risk_weight_boost == 0.0
        assert report.analysis_errors[0]["operation"] == "directive"
        assert report.analysis_errors[0]["error_type"] == "RuntimeError"

    def test_lookup_failures_recorded(self, config, fixed_clock, benign_file):
        jurisdiction = MagicMock()
        jurisdiction.current_code.side_effect = OSError("geoip down")
        anchor = MagicMock()
        anchor.anchor.side_effect = ConnectionError("chain unreachable")

        report = make_analyzer(
            config, fixed_clock, jurisdiction_provider=jurisdiction, anchor_service=anchor
        ).analyze(benign_file)

        assert report.jurisdiction == "UNKNOWN"
        assert report.blockchain_anchor is None
        assert [e["operation"] for e in report.analysis_errors] == ["jurisdiction", "anchor"]

    def test_progress_callback(self, config, fixed_clock, benign_file):
        events = []
        analyzer = make_analyzer(
            config, fixed_clock, progress_callback=lambda *args: events.append(args)
        )
        analyzer.analyze(benign_file)

        assert events[0] == ("hash", "start", "Computing SHA-512")
        assert events[-1][:2] == ("analysis", "complete")

    def test_failing_progress_callback_recorded(self, config, fixed_clock, benign_file):
        def callback(step, status, message):
            raise ValueError("display gone")

        report = make_analyzer(config, fixed_clock, progress_callback=callback).analyze(benign_file)
        assert report.evidence_hash is not None
        assert report.analysis_errors[0]["operation"] == "progress_callback"

    def test_audit_logged(self, config, fixed_clock, audit_logger, risky_file):
        make_analyzer(config, fixed_clock, audit_logger).analyze(risky_file)
        entry = audit_logger.get_audit_trail(action="EVIDENCE_ANALYSIS")[0]
        assert entry["details"]["file_name"] == "statement.txt"

    def test_case_id_generated(self, config, fixed_clock):
        analyzer = make_analyzer(config, fixed_clock)
        assert analyzer.new_case_id() == f"CASE-{int(fixed_clock().timestamp() * 1000)}"

    def test_score_only(self, config, fixed_clock, financial_file):
        diagnostics = make_analyzer(config, fixed_clock).score(financial_file)
        assert diagnostics.financial == 2
        assert not config.ledger_path.exists()


class TestRecoveryLedgerIntegration:
    """Tests for ledger entries produced during analysis."""

    def test_business_finding_recorded(self, config, fixed_clock, financial_file, fake_sealer):
        extractor = ManualFraudExtraction("Acme Trading LLC", 1000.0, "EUR", "AE")
        analyzer = make_analyzer(
            config, fixed_clock, fraud_extractor=extractor, sealing_service=fake_sealer
        )

        report = analyzer.analyze(financial_file, case_id="CASE-42")

        entry = report.ledger_entry
        assert entry.case_id == "CASE-42"
        assert entry.fraud_amount_usd == 1080.0
        assert entry.source_sha512 == report.evidence_hash
        assert entry.party_jurisdiction == "AE"
        assert entry.detected_by == config.app_version
        assert entry.sealed_document == "sealed://recovery_ledger.jsonl/1"

        line = json.loads(config.ledger_path.read_text(encoding="utf-8"))
        assert line["entry_sha512"] == entry.entry_sha512

    def test_individual_not_recorded(self, config, fixed_clock, financial_file, audit_logger):
        extractor = ManualFraudExtraction("John Smith", 1000.0)
        report = make_analyzer(
            config, fixed_clock, audit_logger, fraud_extractor=extractor
        ).analyze(financial_file, case_id="CASE-7")

        assert report.ledger_entry is None
        assert not config.ledger_path.exists()
        assert audit_logger.get_audit_trail(action="LEDGER_SKIP", case_id="CASE-7")

    def test_no_amount_not_recorded(self, config, fixed_clock, financial_file):
        extractor = ManualFraudExtraction("Acme Trading LLC", None)
        report = make_analyzer(config, fixed_clock, fraud_extractor=extractor).analyze(financial_file)
        assert report.ledger_entry is None
        assert report.analysis_errors == []

    def test_unknown_currency_recorded(self, config, fixed_clock, financial_file):
        extractor = ManualFraudExtraction("Acme Trading LLC", 10.0, "XYZ")
        report = make_analyzer(
            config,
            fixed_clock,
            fraud_extractor=extractor,
            currency_converter=CurrencyConverter({"USD": 1.0}),
        ).analyze(financial_file)

        assert report.ledger_entry is None
        assert report.analysis_errors[0]["operation"] == "currency"
        assert not config.ledger_path.exists()

    def test_missing_party_jurisdiction_is_unknown(self, config, fixed_clock, financial_file):
        extractor = ManualFraudExtraction("Acme Trading LLC", 10.0)
        report = make_analyzer(config, fixed_clock, fraud_extractor=extractor).analyze(financial_file)
        assert report.ledger_entry.party_jurisdiction == "UNKNOWN"

    def test_sealing_failure_propagates(self, config, fixed_clock, financial_file, failing_sealer):
        extractor = ManualFraudExtraction("Acme Trading LLC", 10.0)
        analyzer = make_analyzer(
            config, fixed_clock, fraud_extractor=extractor, sealing_service=failing_sealer
        )

        with pytest.raises(SealingError):
            analyzer.analyze(financial_file)
        assert len(config.ledger_path.read_text(encoding="utf-8").splitlines()) == 1


class TestDefaultRuleSource:
    """Tests for rule source selection."""

    def test_bundled_by_default(self, config):
        assert isinstance(default_rule_source(config), AssetRuleSource)

    def test_configured_file(self, config, tmp_path):
        config = config.model_copy(update={"rules_path": tmp_path / "rules.json"})
        assert isinstance(default_rule_source(config), FileRuleSource)


class TestAnalyzeFileFunction:
    """Tests for analyze_file convenience function."""

    def test_analyze_file_returns_report(self, config, risky_file):
        report = analyze_file(risky_file, config=config)
        assert isinstance(report, ForensicReport)
        assert report.risk_score == 1.0
