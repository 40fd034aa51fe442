"""Tests for CLI module."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from evidence_forensic.cli import main, print_status


@pytest.fixture
def runner():
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Point the toolkit at a temporary data directory."""
    path = tmp_path / "data"
    monkeypatch.setenv("EVIDENCE_FORENSIC_DATA_DIR", str(path))
    for name in ("EVIDENCE_FORENSIC_RULES_PATH", "EVIDENCE_FORENSIC_LOG_LEVEL", "EVIDENCE_FORENSIC_SMTP_HOST"):
        monkeypatch.delenv(name, raising=False)
    return path


def invoke(runner, *args):
    return runner.invoke(main, ["--log-level", "ERROR", *args])


class TestCLIBasic:
    """Basic CLI tests."""

    def test_cli_version(self, runner):
        """Test that CLI shows version."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "evidence-forensic" in result.output

    def test_cli_help(self, runner):
        """Test that CLI shows help."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Evidence Forensic Toolkit" in result.output

    def test_cli_info_command(self, runner, data_dir):
        """Test info command."""
        result = invoke(runner, "info")
        assert result.exit_code == 0
        assert "Evidence Forensic Toolkit" in result.output

    def test_bad_config_file(self, runner, tmp_path, data_dir):
        config = tmp_path / "config.yaml"
        config.write_text("log_level: LOUD\n", encoding="utf-8")
        result = runner.invoke(main, ["--config", str(config), "info"])
        assert result.exit_code == 1
        assert "[ERROR]" in result.output

    def test_print_status_function(self):
        """Test print_status helper function."""
        print_status("[OK]", "Test message")
        print_status("[FAIL]", "Error message")
        print_status("[WARN]", "Warning message")
        print_status("[INFO]", "Info message")
        print_status("[ERROR]", "Error message")
        print_status("[UNKNOWN]", "Unknown status")


class TestAnalyzeCommand:
    """Tests for analyze command."""

    def test_analyze_table(self, runner, data_dir, risky_file):
        result = invoke(runner, "analyze", str(risky_file))
        assert result.exit_code == 0
        assert "Risk Score: 1.00" in result.output
        assert "Contradictions in statements" in result.output

    def test_analyze_json(self, runner, data_dir, financial_file):
        result = invoke(runner, "analyze", str(financial_file), "-f", "json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["file_name"] == "email.txt"
        assert data["risk_score"] == pytest.approx(0.19)
        assert data["ledger_entry"] is None

    def test_analyze_output_file(self, runner, data_dir, benign_file, tmp_path):
        output = tmp_path / "report.json"
        result = invoke(runner, "analyze", str(benign_file), "-o", str(output))
        assert result.exit_code == 0
        assert json.loads(output.read_text(encoding="utf-8"))["top_liabilities"] == ["General risk"]

    def test_exported_report_verifies(self, runner, data_dir, benign_file, tmp_path):
        output = tmp_path / "report.json"
        invoke(runner, "analyze", str(benign_file), "-o", str(output))

        result = invoke(runner, "verify-report", str(output))
        assert result.exit_code == 0
        assert "[OK]" in result.output

        document = json.loads(output.read_text(encoding="utf-8"))
        document["risk_score"] = 0.99
        output.write_text(json.dumps(document), encoding="utf-8")

        result = invoke(runner, "verify-report", str(output))
        assert result.exit_code == 1
        assert "[FAIL]" in result.output

    def test_analyze_records_business_finding(self, runner, data_dir, financial_file):
        result = invoke(
            runner, "analyze", str(financial_file),
            "--case-id", "CASE-9", "--party", "Acme Trading LLC",
            "--amount", "250", "--currency", "eur", "--no-seal", "-f", "json",
        )
        assert result.exit_code == 0
        entry = json.loads(result.output)["ledger_entry"]
        assert entry["case_id"] == "CASE-9"
        assert entry["currency"] == "EUR"
        assert entry["fraud_amount_usd"] == 270.0

        lines = (data_dir / "recovery_ledger.jsonl").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1

    def test_analyze_seals_ledger(self, runner, data_dir, financial_file):
        result = invoke(
            runner, "analyze", str(financial_file), "--party", "Acme Trading LLC", "--amount", "10",
        )
        assert result.exit_code == 0
        assert list((data_dir / "sealed").glob("sealed_recovery_ledger_*.pdf"))

    def test_analyze_individual_not_recorded(self, runner, data_dir, financial_file):
        result = invoke(
            runner, "analyze", str(financial_file), "--party", "John Smith", "--amount", "10", "--no-seal",
        )
        assert result.exit_code == 0
        assert not (data_dir / "recovery_ledger.jsonl").exists()

    def test_analyze_missing_file(self, runner, data_dir, tmp_path):
        result = invoke(runner, "analyze", str(tmp_path / "missing.txt"))
        assert result.exit_code != 0


class TestScoreCommand:
    """Tests for score command."""

    def test_score_json(self, runner, data_dir, financial_file):
        result = invoke(runner, "score", str(financial_file), "-f", "json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["financial"] == 2
        assert data["scoring_failed"] is False

    def test_score_table(self, runner, data_dir, benign_file):
        result = invoke(runner, "score", str(benign_file))
        assert result.exit_code == 0
        assert "General risk" in result.output
        assert not (data_dir / "recovery_ledger.jsonl").exists()


class TestVerifyAssetsCommand:
    """Tests for verify-assets command."""

    def test_bundled_assets(self, runner, data_dir):
        result = invoke(runner, "verify-assets")
        assert result.exit_code == 0
        assert "[OK]" in result.output

    def test_tampered_asset_dir(self, runner, data_dir, tmp_path):
        assets = tmp_path / "assets"
        (assets / "rules").mkdir(parents=True)
        (assets / "rules" / "detection_rules.json").write_text('{"keywords": []}', encoding="utf-8")

        result = invoke(runner, "verify-assets", "--asset-dir", str(assets))
        assert result.exit_code == 1
        assert "[FAIL]" in result.output
        assert "[WARN]" in result.output


class TestLedgerCommands:
    """Tests for ledger commands."""

    def record(self, runner, financial_file, case_id):
        return invoke(
            runner, "analyze", str(financial_file), "--case-id", case_id,
            "--party", "Acme Trading LLC", "--amount", "100", "--no-seal", "-f", "json",
        )

    def test_verify_empty(self, runner, data_dir):
        result = invoke(runner, "ledger", "verify")
        assert result.exit_code == 0
        assert "[INFO]" in result.output

    def test_verify_valid(self, runner, data_dir, financial_file):
        self.record(runner, financial_file, "CASE-1")
        self.record(runner, financial_file, "CASE-2")
        result = invoke(runner, "ledger", "verify")
        assert result.exit_code == 0
        assert "2 ledger entries verified" in result.output

    def test_verify_tampered(self, runner, data_dir, financial_file):
        self.record(runner, financial_file, "CASE-1")
        ledger_path = data_dir / "recovery_ledger.jsonl"
        ledger_path.write_text(
            ledger_path.read_text(encoding="utf-8").replace("CASE-1", "CASE-X"), encoding="utf-8"
        )
        result = invoke(runner, "ledger", "verify")
        assert result.exit_code == 1
        assert "[FAIL]" in result.output

    def test_show_json(self, runner, data_dir, financial_file):
        self.record(runner, financial_file, "CASE-1")
        result = invoke(runner, "ledger", "show", "-f", "json")
        assert result.exit_code == 0
        assert json.loads(result.output)[0]["case_id"] == "CASE-1"

    def test_show_empty(self, runner, data_dir):
        result = invoke(runner, "ledger", "show")
        assert result.exit_code == 0
        assert "No ledger entries" in result.output


class TestMeshCommands:
    """Tests for mesh packet commands."""

    def test_export_then_import(self, runner, data_dir, risky_file, tmp_path):
        out_dir = tmp_path / "packets"
        result = invoke(runner, "mesh", "export", str(risky_file), "-o", str(out_dir))
        assert result.exit_code == 0

        packets = list(out_dir.glob("mesh_*.json"))
        assert len(packets) == 1

        result = invoke(runner, "mesh", "import", str(packets[0]))
        assert result.exit_code == 0
        assert "[OK]" in result.output

        state = json.loads((data_dir / "directives.json").read_text(encoding="utf-8"))
        assert state["directives"]["prioritize_concealment"] is True

    def test_import_tampered_rejected(self, runner, data_dir, risky_file, tmp_path):
        out_dir = tmp_path / "packets"
        invoke(runner, "mesh", "export", str(risky_file), "-o", str(out_dir))
        packet_path = next(out_dir.glob("mesh_*.json"))

        document = json.loads(packet_path.read_text(encoding="utf-8"))
        document["stats"]["risk_score"] = 0.0
        packet_path.write_text(json.dumps(document), encoding="utf-8")

        result = invoke(runner, "mesh", "import", str(packet_path))
        assert result.exit_code == 1
        assert "TAMPERED" in result.output
        assert not (data_dir / "directives.json").exists()

    def test_export_email_unconfigured(self, runner, data_dir, benign_file):
        result = invoke(runner, "mesh", "export", str(benign_file), "--email")
        assert result.exit_code == 1
        assert "[FAIL]" in result.output
        assert list((data_dir / "mesh").glob("mesh_*.json"))

    def test_export_email_carries_ledger_entry(self, runner, data_dir, financial_file):
        with patch("evidence_forensic.cli.SMTPMailer") as mock_mailer:
            mock_mailer.return_value.recipient = "investigator@example.org"
            result = invoke(
                runner, "mesh", "export", str(financial_file), "--email",
                "--case-id", "CASE-7", "--party", "Acme Trading LLC", "--amount", "100", "--no-seal",
            )

        assert result.exit_code == 0
        document = mock_mailer.return_value.send.call_args[0][0]
        assert document["ledger_entry"]["case_id"] == "CASE-7"
        assert document["ledger_entry"]["party_name"] == "Acme Trading LLC"
        assert document["forensic_report"]["evidence_hash"]
        assert len((data_dir / "recovery_ledger.jsonl").read_text(encoding="utf-8").splitlines()) == 1

    def test_export_refused_when_assets_tampered(self, runner, data_dir, benign_file, tmp_path):
        manifest = {"rules/detection_rules.json": "0" * 128}
        out_dir = tmp_path / "packets"
        with patch.dict("evidence_forensic.core.integrity.DEFAULT_MANIFEST", manifest, clear=True):
            result = invoke(runner, "mesh", "export", str(benign_file), "-o", str(out_dir))

        assert result.exit_code == 1
        assert "[FAIL]" in result.output
        assert not out_dir.exists()

    def test_import_unwritable_state(self, runner, data_dir, risky_file, tmp_path):
        out_dir = tmp_path / "packets"
        invoke(runner, "mesh", "export", str(risky_file), "-o", str(out_dir))
        packet_path = next(out_dir.glob("mesh_*.json"))
        (data_dir / "directives.json").mkdir(parents=True)

        result = invoke(runner, "mesh", "import", str(packet_path))
        assert result.exit_code == 1
        assert "[ERROR]" in result.output

    def test_show_directives(self, runner, data_dir):
        result = invoke(runner, "mesh", "show-directives")
        assert result.exit_code == 0
        assert "prioritize_contradictions" in result.output


class TestSealAndAuditCommands:
    """Tests for seal and audit commands."""

    def test_seal(self, runner, data_dir, risky_file, tmp_path):
        out_dir = tmp_path / "sealed"
        result = invoke(runner, "seal", str(risky_file), "-o", str(out_dir), "--examiner", "A. Examiner")
        assert result.exit_code == 0
        assert list(out_dir.glob("sealed_statement_*.pdf"))

    def test_audit_export(self, runner, data_dir, benign_file, tmp_path):
        invoke(runner, "analyze", str(benign_file))
        output = tmp_path / "trail.json"
        result = invoke(runner, "audit", "export", str(output))
        assert result.exit_code == 0
        actions = [entry["action"] for entry in json.loads(output.read_text(encoding="utf-8"))]
        assert "EVIDENCE_ANALYSIS" in actions
