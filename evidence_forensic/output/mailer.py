"""SMTP transport for signed mesh packets."""

import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict

from evidence_forensic.config import SMTPConfig
from evidence_forensic.models import utc_timestamp
from evidence_forensic.utils.canonical import pretty_json
from evidence_forensic.utils.exceptions import TransportError

logger = logging.getLogger(__name__)

ATTACHMENT_NAME = "evidence_mesh_packet.json"


class SMTPMailer:
    """Sends a signed packet as a JSON attachment. No retry."""

    def __init__(self, config: SMTPConfig):
        self.config = config

    @property
    def recipient(self) -> str:
        return self.config.recipient

    def build_message(self, payload: Dict[str, Any]) -> EmailMessage:
        digest = str(payload.get("sha512", ""))
        message = EmailMessage()
        message["Subject"] = f"Evidence mesh packet {digest[:12]} - {utc_timestamp()}"
        message["From"] = self.config.sender
        message["To"] = self.config.recipient
        message.set_content(
            "Attached is a signed evidence mesh packet.\n"
            f"SHA-512: {digest}\n"
        )
        message.add_attachment(
            pretty_json(payload).encode("utf-8"),
            maintype="application",
            subtype="json",
            filename=ATTACHMENT_NAME,
        )
        return message

    def send(self, payload: Dict[str, Any]) -> None:
        """
        Deliver the signed payload.

        Raises:
            TransportError: If SMTP is not configured or delivery fails
        """
        if not self.config.is_configured:
            raise TransportError(
                self.config.recipient or "",
                "SMTP host, sender and recipient must be configured",
            )

        message = self.build_message(payload)
        try:
            with smtplib.SMTP(self.config.host, self.config.port, timeout=self.config.timeout) as smtp:
                if self.config.use_starttls:
                    smtp.starttls()
                if self.config.username:
                    smtp.login(self.config.username, self.config.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(self.config.recipient, "SMTP delivery failed", cause=e)

        logger.info(f"Mesh packet sent to {self.config.recipient}")
