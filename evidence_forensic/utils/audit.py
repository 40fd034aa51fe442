"""Forensic-grade audit trail for evidence handling.

Every analysis, ledger write, integrity check, seal and packet exchange is
recorded with a UTC timestamp and workstation details. The trail is kept as
rotating JSON-lines (machine readable) plus a parallel text log.
"""

import csv
import json
import logging
import logging.handlers
import os
import platform
import socket
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional


class AuditLevel(str, Enum):
    """Audit event severity levels for forensic logging."""
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"
    SECURITY = "SECURITY"


class AuditLogger:
    """Forensic-grade audit logger for evidence handling."""

    def __init__(
        self,
        log_dir: Path,
        log_name: str = "evidence_forensic_audit",
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 10,
    ):
        """Initialize audit logger with rotating file handlers."""
        self.log_dir = Path(log_dir)
        self.log_name = log_name
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self._lock = threading.Lock()

        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.json_logger = self._setup_logger("json", f"{self.log_name}.jsonl")
        self.text_logger = self._setup_logger("text", f"{self.log_name}.log")

    @property
    def json_path(self) -> Path:
        return self.log_dir / f"{self.log_name}.jsonl"

    def _setup_logger(self, kind: str, filename: str) -> logging.Logger:
        """Setup a logger writing bare lines to a rotating file."""
        # Keyed by directory so two loggers on different dirs never share handlers
        logger = logging.getLogger(f"{self.log_name}_{kind}.{abs(hash(str(self.log_dir)))}")
        logger.setLevel(logging.INFO)
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / filename,
            maxBytes=self.max_bytes,
            backupCount=self.backup_count,
            encoding="utf-8"
        )
        handler.setLevel(logging.INFO)
        logger.addHandler(handler)
        logger.propagate = False

        return logger

    def _get_system_info(self) -> dict:
        """Get current system information for audit entry."""
        try:
            hostname = socket.gethostname()
        except OSError:
            hostname = "unknown"

        return {
            "workstation": hostname,
            "user": os.environ.get("USERNAME") or os.environ.get("USER", "unknown"),
            "pid": os.getpid(),
            "platform": platform.system(),
        }

    def _format_json_entry(self, entry: dict) -> str:
        """Format audit entry as JSON line."""
        return json.dumps(entry, ensure_ascii=False, default=str)

    def _format_text_entry(self, entry: dict) -> str:
        """Format audit entry as human-readable text."""
        status = "[OK]" if entry.get("success", True) else "[FAIL]"

        parts = [
            entry["timestamp"],
            entry["level"],
            status,
            f"User: {entry['system_info']['user']}",
            f"Action: {entry['action']}",
        ]

        if entry.get("evidence_hash"):
            parts.append(f"Evidence: {entry['evidence_hash'][:16]}")
        if entry.get("case_id"):
            parts.append(f"Case: {entry['case_id']}")

        return " | ".join(parts)

    def log(
        self,
        level: AuditLevel,
        action: str,
        details: dict = None,
        evidence_hash: str = None,
        case_id: str = None,
        success: bool = True,
    ) -> None:
        """Log an audit event."""
        with self._lock:
            entry = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "level": level.value,
                "action": action,
                "success": success,
                "system_info": self._get_system_info(),
            }

            if details:
                entry["details"] = details
            if evidence_hash:
                entry["evidence_hash"] = evidence_hash
            if case_id:
                entry["case_id"] = case_id

            self.json_logger.info(self._format_json_entry(entry))
            self.text_logger.info(self._format_text_entry(entry))

    def log_analysis(
        self,
        evidence_hash: Optional[str],
        file_name: str,
        risk_score: float,
        liabilities: list,
        scoring_failed: bool = False,
    ) -> None:
        """Log a completed evidence analysis."""
        self.log(
            level=AuditLevel.WARNING if scoring_failed else AuditLevel.INFO,
            action="EVIDENCE_ANALYSIS",
            details={
                "file_name": file_name,
                "risk_score": risk_score,
                "liabilities": liabilities,
                "scoring_failed": scoring_failed,
            },
            evidence_hash=evidence_hash,
            success=not scoring_failed,
        )

    def log_ledger_append(
        self,
        case_id: str,
        entry_sha512: str,
        party_name: str,
        source_sha512: str,
    ) -> None:
        """Log a recovery ledger append."""
        self.log(
            level=AuditLevel.INFO,
            action="LEDGER_APPEND",
            details={"entry_sha512": entry_sha512, "party_name": party_name},
            evidence_hash=source_sha512,
            case_id=case_id,
        )

    def log_ledger_skip(self, case_id: str, party_name: Optional[str]) -> None:
        """Log a finding that was not recorded because the party is not a business."""
        self.log(
            level=AuditLevel.INFO,
            action="LEDGER_SKIP",
            details={"reason": "party is not a business", "party_name": party_name},
            case_id=case_id,
        )

    def log_seal(self, file_path: str, sealed_document: str) -> None:
        """Log creation of a sealed attestation document."""
        self.log(
            level=AuditLevel.INFO,
            action="DOCUMENT_SEALED",
            details={"file_path": str(file_path), "sealed_document": str(sealed_document)},
        )

    def log_integrity_check(self, results: dict, all_ok: bool) -> None:
        """Log the outcome of an asset integrity check."""
        self.log(
            level=AuditLevel.INFO if all_ok else AuditLevel.SECURITY,
            action="ASSET_INTEGRITY_CHECK",
            details={"results": results},
            success=all_ok,
        )

    def log_packet_export(self, destination: str, sha512: str, transport: str) -> None:
        """Log a signed mesh packet export."""
        self.log(
            level=AuditLevel.INFO,
            action="MESH_PACKET_EXPORT",
            details={"destination": destination, "sha512": sha512, "transport": transport},
        )

    def log_packet_import(self, status: str, claimed_sha512: Optional[str], applied: bool) -> None:
        """Log a mesh packet import attempt."""
        self.log(
            level=AuditLevel.INFO if applied else AuditLevel.SECURITY,
            action="MESH_PACKET_IMPORT",
            details={"status": status, "claimed_sha512": claimed_sha512, "applied": applied},
            success=applied,
        )

    def log_error(self, action: str, error: Exception, evidence_hash: str = None) -> None:
        """Log error event with exception details."""
        self.log(
            level=AuditLevel.ERROR,
            action=action,
            details={"error_type": type(error).__name__, "error_message": str(error)},
            evidence_hash=evidence_hash,
            success=False,
        )

    def log_security(self, action: str, details: str, evidence_hash: str = None) -> None:
        """Log security-relevant event."""
        self.log(
            level=AuditLevel.SECURITY,
            action=action,
            details={"security_details": details},
            evidence_hash=evidence_hash,
            success=False,
        )

    def get_audit_trail(
        self,
        evidence_hash: str = None,
        case_id: str = None,
        action: str = None,
        start_date: datetime = None,
        end_date: datetime = None,
        level: AuditLevel = None,
    ) -> list[dict]:
        """Query audit trail from JSON log file."""
        if not self.json_path.exists():
            return []

        entries = []

        with open(self.json_path, "r", encoding="utf-8") as f:
            for line in f:
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue

                if evidence_hash and entry.get("evidence_hash") != evidence_hash:
                    continue
                if case_id and entry.get("case_id") != case_id:
                    continue
                if action and entry.get("action") != action:
                    continue
                if level and entry.get("level") != level.value:
                    continue

                entry_time = datetime.fromisoformat(entry["timestamp"])
                if start_date and entry_time < start_date:
                    continue
                if end_date and entry_time > end_date:
                    continue

                entries.append(entry)

        return entries

    def export_audit_trail(
        self,
        output_path: Path,
        case_id: str = None,
        format: str = "json",
    ) -> None:
        """Export filtered audit trail to file."""
        entries = self.get_audit_trail(case_id=case_id)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if format == "json":
            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2, ensure_ascii=False, default=str)

        elif format == "csv":
            if not entries:
                output_path.write_text("", encoding="utf-8")
                return

            flat_entries = [
                {
                    "timestamp": entry["timestamp"],
                    "level": entry["level"],
                    "action": entry["action"],
                    "success": entry["success"],
                    "workstation": entry["system_info"]["workstation"],
                    "user": entry["system_info"]["user"],
                    "evidence_hash": entry.get("evidence_hash", ""),
                    "case_id": entry.get("case_id", ""),
                    "details": json.dumps(entry.get("details", {}), default=str),
                }
                for entry in entries
            ]

            with open(output_path, "w", encoding="utf-8", newline="") as f:
                writer = csv.DictWriter(f, fieldnames=flat_entries[0].keys())
                writer.writeheader()
                writer.writerows(flat_entries)

        elif format == "txt":
            with open(output_path, "w", encoding="utf-8") as f:
                for entry in entries:
                    f.write(self._format_text_entry(entry))
                    f.write("\n")

        else:
            raise ValueError(f"Unsupported format: {format}. Use json, csv, or txt.")

    def close(self) -> None:
        """Close the underlying file handlers."""
        for logger in (self.json_logger, self.text_logger):
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
