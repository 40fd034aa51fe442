"""
Signed mesh packets for exchanging directive flags between installations.

A packet carries the five directive flags and aggregate scoring stats (no
case text). It is signed with SHA-512 over the canonical JSON of every field
except ``sha512``. An importer strips ``sha512``, re-serializes the rest with
the same canonical function and compares; only verified packets are merged,
and merging is a per-flag logical OR.
"""

import json
import os
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Union

from evidence_forensic.models import (
    DEFAULT_APP_VERSION,
    DEFAULT_MESH_SCHEMA,
    DEFAULT_TEMPLATE_VERSION,
    DirectiveFlags,
    ForensicSummary,
    LedgerEntry,
    MeshPacket,
    MeshStats,
    PacketStatus,
    PacketVerification,
    ScoreDiagnostics,
    utc_timestamp,
)
from evidence_forensic.utils.audit import AuditLogger
from evidence_forensic.utils.canonical import canonical_sha512, pretty_json
from evidence_forensic.utils.exceptions import EvidenceIOError
from evidence_forensic.utils.hashing import digests_match

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    """Transport collaborator for signed packets."""

    def send(self, payload: Dict[str, Any]) -> None:
        ...


class DirectiveSink(Protocol):
    """Receives the flags of a verified packet."""

    def apply(self, flags: DirectiveFlags) -> DirectiveFlags:
        ...


class DirectiveState:
    """
    Local directive flags, optionally persisted to a JSON file.

    Flags only ever accumulate: ``apply`` ORs incoming flags into the
    current set, so re-importing or reordering packets cannot clear a flag.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, directives: Optional[DirectiveFlags] = None):
        self.path = Path(path) if path else None
        self.directives = directives or DirectiveFlags()

    @classmethod
    def load(cls, path: Union[str, Path]) -> "DirectiveState":
        """Load persisted flags; a missing file starts with every flag clear."""
        path = Path(path)
        if not path.exists():
            return cls(path)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable directive state {path}: {e}")
            return cls(path)

        return cls(path, DirectiveFlags.from_mapping(data.get("directives") if isinstance(data, dict) else None))

    def apply(self, flags: DirectiveFlags) -> DirectiveFlags:
        """
        OR-merge ``flags`` into the current set.

        The merged set is persisted before it replaces the in-memory flags,
        so a failed save leaves this state unchanged.

        Raises:
            EvidenceIOError: If the state file cannot be written
        """
        merged = self.directives.merge(flags)
        if self.path:
            self._write(merged)
        self.directives = merged
        return merged

    def _write(self, directives: DirectiveFlags) -> None:
        document = {
            "directives": directives.as_dict(),
            "updated_at": utc_timestamp(),
        }
        staging = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            staging.write_text(pretty_json(document) + "\n", encoding="utf-8")
            os.replace(staging, self.path)
        except OSError as e:
            raise EvidenceIOError(str(self.path), e.strerror or str(e), cause=e)


class MeshPacketProtocol:
    """Builds, signs, exports and verifies mesh packets."""

    def __init__(
        self,
        schema: str = DEFAULT_MESH_SCHEMA,
        template_version: str = DEFAULT_TEMPLATE_VERSION,
        app_version: str = DEFAULT_APP_VERSION,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.schema = schema
        self.template_version = template_version
        self.app_version = app_version
        self.audit_logger = audit_logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_packet(self, directives: DirectiveFlags, diagnostics: ScoreDiagnostics) -> MeshPacket:
        """Unsigned packet stamped with the current UTC second."""
        return MeshPacket(
            schema_id=self.schema,
            template_version=self.template_version,
            app_version=self.app_version,
            timestamp_utc=utc_timestamp(self._clock()),
            directives=directives.model_copy(),
            stats=MeshStats.from_diagnostics(diagnostics),
        )

    def signing_payload(
        self,
        packet: MeshPacket,
        forensic_summary: Optional[ForensicSummary] = None,
        ledger_entry: Optional[LedgerEntry] = None,
    ) -> Dict[str, Any]:
        """Ordered payload to hash, with optional summaries inserted before signing."""
        update = {}
        if forensic_summary is not None:
            update["forensic_report"] = forensic_summary
        if ledger_entry is not None:
            update["ledger_entry"] = ledger_entry
        if update:
            packet = packet.model_copy(update=update)
        return packet.signing_payload()

    @staticmethod
    def sign(payload: Dict[str, Any]) -> str:
        """SHA-512 over the canonical serialization of the payload."""
        return canonical_sha512(payload)

    def _signed(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(payload)
        document["sha512"] = self.sign(payload)
        return document

    def export_to_file(self, packet: MeshPacket, directory: Union[str, Path]) -> Path:
        """
        Sign a packet and write it as pretty-printed JSON.

        Returns:
            Path of the written ``mesh_<timestamp>.json`` file

        Raises:
            EvidenceIOError: If the file cannot be written
        """
        document = self._signed(self.signing_payload(packet))

        directory = Path(directory)
        path = directory / packet.file_name
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_text(pretty_json(document) + "\n", encoding="utf-8")
        except OSError as e:
            raise EvidenceIOError(str(path), e.strerror or str(e), cause=e)

        logger.info(f"Mesh packet exported to {path}")
        if self.audit_logger:
            self.audit_logger.log_packet_export(str(path), document["sha512"], "file")
        return path

    def export_for_transport(
        self,
        packet: MeshPacket,
        forensic_summary: Optional[ForensicSummary],
        ledger_entry: Optional[LedgerEntry],
        mailer: Mailer,
    ) -> Dict[str, Any]:
        """
        Sign a packet with optional summaries and hand it to the mailer.

        Transport failures raised by the mailer propagate unchanged; there
        is no retry.

        Returns:
            The signed document that was sent
        """
        document = self._signed(self.signing_payload(packet, forensic_summary, ledger_entry))
        mailer.send(document)

        logger.info("Mesh packet handed to transport")
        if self.audit_logger:
            self.audit_logger.log_packet_export(
                getattr(mailer, "recipient", None) or "mailer", document["sha512"], "mail"
            )
        return document

    def verify_packet(self, json_payload: Union[str, bytes, Dict[str, Any]]) -> PacketVerification:
        """
        Verify a packet without applying it.

        Returns:
            PacketVerification with status VERIFIED, TAMPERED or MALFORMED
        """
        if isinstance(json_payload, dict):
            document = json_payload
        else:
            try:
                document = json.loads(json_payload)
            except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
                return PacketVerification(status=PacketStatus.MALFORMED, reason=f"not valid JSON: {e}")

        if not isinstance(document, dict):
            return PacketVerification(status=PacketStatus.MALFORMED, reason="packet is not a JSON object")

        claimed = document.get("sha512")
        if not isinstance(claimed, str) or not claimed:
            return PacketVerification(status=PacketStatus.MALFORMED, reason="packet carries no sha512")

        body = {key: value for key, value in document.items() if key != "sha512"}
        try:
            computed = self.sign(body)
        except (TypeError, ValueError) as e:
            return PacketVerification(
                status=PacketStatus.MALFORMED,
                claimed_sha512=claimed,
                reason=f"packet cannot be canonicalized: {e}",
            )

        if not digests_match(claimed, computed):
            return PacketVerification(
                status=PacketStatus.TAMPERED,
                claimed_sha512=claimed,
                computed_sha512=computed,
                reason="sha512 does not match packet content",
            )

        return PacketVerification(
            status=PacketStatus.VERIFIED,
            claimed_sha512=claimed,
            computed_sha512=computed,
            directives=DirectiveFlags.from_mapping(document.get("directives")),
        )

    def import_packet(
        self,
        json_payload: Union[str, bytes, Dict[str, Any]],
        sink: Optional[DirectiveSink] = None,
    ) -> PacketVerification:
        """
        Verify a packet and OR-merge its flags into ``sink``.

        Never raises. A verified packet whose flags the sink cannot accept
        keeps status VERIFIED with ``applied`` False and the sink's error as
        ``reason``; the sink is expected to leave its state unchanged.

        Returns:
            PacketVerification with ``applied`` set when the flags were merged
        """
        verification = self.verify_packet(json_payload)

        if not verification.verified:
            logger.warning(f"Mesh packet rejected ({verification.status.value}): {verification.reason}")
        elif sink is None:
            verification.applied = True
        else:
            try:
                sink.apply(verification.directives)
                verification.applied = True
            except Exception as e:
                verification.reason = f"directive state not updated: {e}"
                logger.error(f"Verified mesh packet could not be applied: {e}")
                if self.audit_logger:
                    self.audit_logger.log_error("MESH_PACKET_IMPORT", e)

        if verification.applied:
            logger.info(f"Mesh packet verified and applied ({verification.claimed_sha512[:12]})")

        if self.audit_logger:
            self.audit_logger.log_packet_import(
                verification.status.value, verification.claimed_sha512, verification.applied
            )
        return verification

    def import_and_apply(
        self,
        json_payload: Union[str, bytes, Dict[str, Any]],
        sink: Optional[DirectiveSink] = None,
    ) -> bool:
        """
        Verify a packet and OR-merge its flags into ``sink``.

        Returns:
            True if the packet verified and was applied, False otherwise.
            Nothing is applied when False is returned.
        """
        return self.import_packet(json_payload, sink).applied
