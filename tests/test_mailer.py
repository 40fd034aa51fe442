"""Tests for SMTP transport of mesh packets."""

import json
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from evidence_forensic.config import SMTPConfig
from evidence_forensic.output.mailer import ATTACHMENT_NAME, SMTPMailer
from evidence_forensic.utils.exceptions import TransportError

PAYLOAD = {"schema": "evidence.mesh.v1", "directives": {}, "sha512": "ab" * 64}


@pytest.fixture
def smtp_config():
    return SMTPConfig(
        host="smtp.example.org",
        port=2525,
        username="mesh",
        password="secret",
        sender="mesh@example.org",
        recipient="investigator@example.org",
    )


class TestBuildMessage:
    """Tests for message construction."""

    def test_headers_and_attachment(self, smtp_config):
        message = SMTPMailer(smtp_config).build_message(PAYLOAD)

        assert message["To"] == "investigator@example.org"
        assert message["From"] == "mesh@example.org"
        assert ("ab" * 6) in message["Subject"]

        attachments = list(message.iter_attachments())
        assert len(attachments) == 1
        assert attachments[0].get_filename() == ATTACHMENT_NAME
        assert json.loads(attachments[0].get_content()) == PAYLOAD


class TestSend:
    """Tests for delivery."""

    @patch("evidence_forensic.output.mailer.smtplib.SMTP")
    def test_send(self, mock_smtp, smtp_config):
        server = MagicMock()
        mock_smtp.return_value.__enter__.return_value = server

        SMTPMailer(smtp_config).send(PAYLOAD)

        mock_smtp.assert_called_once_with("smtp.example.org", 2525, timeout=30.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mesh", "secret")
        server.send_message.assert_called_once()

    @patch("evidence_forensic.output.mailer.smtplib.SMTP")
    def test_no_starttls_or_login(self, mock_smtp, smtp_config):
        server = MagicMock()
        mock_smtp.return_value.__enter__.return_value = server
        config = smtp_config.model_copy(update={"use_starttls": False, "username": None})

        SMTPMailer(config).send(PAYLOAD)

        server.starttls.assert_not_called()
        server.login.assert_not_called()

    @patch("evidence_forensic.output.mailer.smtplib.SMTP")
    def test_delivery_failure(self, mock_smtp, smtp_config):
        mock_smtp.side_effect = smtplib.SMTPConnectError(421, "busy")
        with pytest.raises(TransportError) as exc_info:
            SMTPMailer(smtp_config).send(PAYLOAD)
        assert exc_info.value.recipient == "investigator@example.org"

    @patch("evidence_forensic.output.mailer.smtplib.SMTP")
    def test_not_configured(self, mock_smtp):
        with pytest.raises(TransportError):
            SMTPMailer(SMTPConfig()).send(PAYLOAD)
        mock_smtp.assert_not_called()

    def test_recipient(self, smtp_config):
        assert SMTPMailer(smtp_config).recipient == "investigator@example.org"
