"""Pytest configuration and shared fixtures for Evidence Forensic Toolkit tests."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from evidence_forensic.config import ForensicConfig
from evidence_forensic.utils.audit import AuditLogger

# Fallback-lexicon counts for RISKY_TEXT:
# keywords=4 entities=0 evasion=2 contradictions=3 concealment=2 financial=4
RISKY_TEXT = (
    "I never said that. That never happened. You forged the invoice. "
    "Delete this and use my other phone. I don't recall. Stop asking. "
    "Wire the cash through the bank."
)

# keywords=1 (invoice) financial=2 (invoice, wire)
FINANCIAL_TEXT = "Please send the invoice by wire."

BENIGN_TEXT = "The weather was pleasant today."

FIXED_NOW = datetime(2024, 3, 15, 10, 30, 45, tzinfo=timezone.utc)


class FakeSealer:
    """Records seal() calls and returns a predictable reference."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sealed = []

    def seal(self, file_path):
        self.sealed.append(Path(file_path))
        if self.fail:
            raise RuntimeError("printer on fire")
        return f"sealed://{Path(file_path).name}/{len(self.sealed)}"


class FakeMailer:
    """Captures payloads handed to transport."""

    recipient = "investigator@example.org"

    def __init__(self, error: Exception = None):
        self.error = error
        self.sent = []

    def send(self, payload):
        if self.error:
            raise self.error
        self.sent.append(payload)


@pytest.fixture
def fixed_clock():
    """Clock returning a fixed UTC instant."""
    return lambda: FIXED_NOW


@pytest.fixture
def config(tmp_path):
    """Configuration rooted in a temporary data directory."""
    return ForensicConfig(data_dir=tmp_path / "data")


@pytest.fixture
def audit_logger(tmp_path):
    """Audit logger writing to a temporary directory."""
    logger = AuditLogger(tmp_path / "logs")
    yield logger
    logger.close()


@pytest.fixture
def risky_file(tmp_path):
    """Evidence file with many risk indicators."""
    path = tmp_path / "statement.txt"
    path.write_text(RISKY_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def financial_file(tmp_path):
    """Evidence file with a couple of financial indicators."""
    path = tmp_path / "email.txt"
    path.write_text(FINANCIAL_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def benign_file(tmp_path):
    """Evidence file with no risk indicators."""
    path = tmp_path / "notes.txt"
    path.write_text(BENIGN_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def fake_sealer():
    return FakeSealer()


@pytest.fixture
def fake_mailer():
    return FakeMailer()


@pytest.fixture
def failing_sealer():
    return FakeSealer(fail=True)


@pytest.fixture
def risky_text():
    return RISKY_TEXT


@pytest.fixture
def financial_text():
    return FINANCIAL_TEXT


@pytest.fixture
def benign_text():
    return BENIGN_TEXT
