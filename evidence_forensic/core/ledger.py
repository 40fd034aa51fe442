"""
Append-only recovery ledger for business-fraud findings.

One JSON object per line, fields in a fixed order, each line carrying the
SHA-512 of its own canonical payload. Lines are written with O_APPEND and
never rewritten, so every entry can be re-verified from its own fields.

Thread-safe within a process via an in-process lock; appends additionally
take an advisory ``fcntl.flock`` where the platform provides it.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol, Union

from evidence_forensic.models import (
    LEDGER_PAYLOAD_FIELDS,
    LedgerEntry,
    LedgerLineFailure,
    LedgerVerification,
    utc_timestamp,
)
from evidence_forensic.utils.audit import AuditLogger
from evidence_forensic.utils.canonical import canonical_json, canonical_sha512
from evidence_forensic.utils.exceptions import EvidenceIOError, ParseError, SealingError
from evidence_forensic.utils.hashing import digests_match

# Advisory file locking -- POSIX only, no-op elsewhere
try:
    import fcntl
    _HAS_FCNTL = True
except ImportError:
    _HAS_FCNTL = False

logger = logging.getLogger(__name__)

# Legal-entity markers; matched as lowercase substrings of the party name
BUSINESS_TOKENS = frozenset({
    "ltd", "(pty)", "pty", "llc", "inc", "corp", "gmbh", "sarl", "bv", "plc",
    "limited", "proprietary", "company", "co.", "s.a.", "ag", "oy", "ab", "kft",
    "s.p.a", "srl",
})


def is_business_party(name: Optional[str], tokens: Iterable[str] = BUSINESS_TOKENS) -> bool:
    """Return True when the trimmed, lowercased name contains a legal-entity token."""
    if not name or not name.strip():
        return False
    lowered = name.strip().lower()
    return any(token in lowered for token in tokens)


class SealingService(Protocol):
    """Produces an attested rendering of a file and returns a reference to it."""

    def seal(self, file_path: Union[str, Path]) -> str:
        ...


class EvidenceLedger:
    """Append-only JSON-lines ledger of business-fraud findings."""

    def __init__(
        self,
        ledger_path: Union[str, Path],
        business_predicate: Callable[[Optional[str]], bool] = is_business_party,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the ledger.

        Args:
            ledger_path: JSONL file; created on first append
            business_predicate: Decides whether a party is recorded at all
            audit_logger: Optional audit trail
            clock: Returns the current UTC time (injectable for tests)
        """
        self.ledger_path = Path(ledger_path)
        self.business_predicate = business_predicate
        self.audit_logger = audit_logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def _append_line(self, line: str) -> None:
        """Append one newline-terminated line. Caller holds the thread lock."""
        data = line.encode("utf-8")
        self.ledger_path.parent.mkdir(parents=True, exist_ok=True)

        fd = os.open(
            str(self.ledger_path),
            os.O_WRONLY | os.O_APPEND | os.O_CREAT,
            0o644,
        )
        try:
            if _HAS_FCNTL:
                fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                view = memoryview(data)
                while view:
                    written = os.write(fd, view)
                    view = view[written:]
            finally:
                if _HAS_FCNTL:
                    fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def record(
        self,
        case_id: str,
        amount: float,
        amount_usd: float,
        currency: str,
        party_name: Optional[str],
        party_jurisdiction: str,
        source_sha512: str,
        app_version: str,
        sealing_service: Optional[SealingService] = None,
    ) -> Optional[LedgerEntry]:
        """
        Record a business-fraud finding.

        Args:
            case_id: Case identifier
            amount: Amount in the original currency
            amount_usd: Amount normalized to USD
            currency: ISO currency code of ``amount``
            party_name: Counterparty; non-business parties are skipped
            party_jurisdiction: Jurisdiction code of the party
            source_sha512: SHA-512 of the analyzed evidence file
            app_version: Recorded as ``detected_by``
            sealing_service: Seals the ledger after the append (optional)

        Returns:
            The written entry, or None when the party is not a business

        Raises:
            EvidenceIOError: If the ledger file cannot be appended to
            SealingError: If sealing fails (the line is already persisted)
        """
        if not self.business_predicate(party_name):
            logger.info(f"Ledger skip for case {case_id}: party is not a business")
            if self.audit_logger:
                self.audit_logger.log_ledger_skip(case_id, party_name)
            return None

        entry = LedgerEntry(
            case_id=case_id,
            fraud_amount=amount,
            fraud_amount_usd=amount_usd,
            currency=currency,
            party_name=party_name,
            party_jurisdiction=party_jurisdiction,
            source_sha512=source_sha512,
            detected_at=utc_timestamp(self._clock()),
            detected_by=app_version,
        )
        entry = entry.model_copy(update={"entry_sha512": entry.compute_sha512()})

        with self._lock:
            try:
                self._append_line(canonical_json(entry.to_record()) + "\n")
            except OSError as e:
                raise EvidenceIOError(str(self.ledger_path), e.strerror or str(e), cause=e)

        logger.info(f"Ledger entry appended for case {case_id} ({entry.entry_sha512[:12]})")
        if self.audit_logger:
            self.audit_logger.log_ledger_append(
                case_id, entry.entry_sha512, entry.party_name, source_sha512
            )

        if sealing_service is not None:
            entry = entry.model_copy(update={"sealed_document": self._seal(sealing_service)})

        return entry

    def _seal(self, sealing_service: SealingService) -> str:
        try:
            reference = sealing_service.seal(self.ledger_path)
        except SealingError:
            raise
        except Exception as e:
            raise SealingError(str(self.ledger_path), str(e), cause=e)

        if self.audit_logger:
            self.audit_logger.log_seal(str(self.ledger_path), str(reference))
        return str(reference)

    @staticmethod
    def failure_reason(record: Any) -> Optional[str]:
        """Why a parsed ledger record fails verification, or None if it is valid."""
        if not isinstance(record, Mapping):
            return "line is not a JSON object"

        missing = [name for name in LEDGER_PAYLOAD_FIELDS if name not in record]
        if missing:
            return f"missing fields: {', '.join(missing)}"
        if not record.get("entry_sha512"):
            return "missing entry_sha512"

        payload = {name: record[name] for name in LEDGER_PAYLOAD_FIELDS}
        try:
            computed = canonical_sha512(payload)
        except (TypeError, ValueError) as e:
            return f"payload cannot be serialized: {e}"

        if not digests_match(record["entry_sha512"], computed):
            return f"hash mismatch (stored {str(record['entry_sha512'])[:12]}..., computed {computed[:12]}...)"
        return None

    def verify_entry(self, record: Any) -> bool:
        """Recompute one entry's hash from its own fields."""
        return self.failure_reason(record) is None

    def _iter_lines(self):
        try:
            with open(self.ledger_path, "r", encoding="utf-8") as f:
                for line_number, line in enumerate(f, start=1):
                    if line.strip():
                        yield line_number, line
        except OSError as e:
            raise EvidenceIOError(str(self.ledger_path), e.strerror or str(e), cause=e)

    def read_entries(self) -> List[LedgerEntry]:
        """
        Load every entry in file order.

        Raises:
            EvidenceIOError: If the ledger cannot be read
            ParseError: If a line is not a valid ledger record
        """
        if not self.ledger_path.exists():
            return []

        entries = []
        for line_number, line in self._iter_lines():
            try:
                entries.append(LedgerEntry(**json.loads(line)))
            except (json.JSONDecodeError, TypeError, ValueError) as e:
                raise ParseError(
                    f"invalid ledger line {line_number}",
                    source=str(self.ledger_path),
                    cause=e,
                )
        return entries

    def verify(self) -> LedgerVerification:
        """Re-verify every line; failures are reported per line, never raised."""
        result = LedgerVerification(ledger_path=str(self.ledger_path))
        if not self.ledger_path.exists():
            return result

        for line_number, line in self._iter_lines():
            result.total_entries += 1
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                reason = f"malformed JSON: {e.msg}"
            else:
                reason = self.failure_reason(record)

            if reason is None:
                result.valid_entries += 1
            else:
                result.failures.append(LedgerLineFailure(line_number=line_number, reason=reason))

        if result.failures:
            logger.warning(f"Ledger verification found {len(result.failures)} invalid line(s)")
            if self.audit_logger:
                self.audit_logger.log_security(
                    "LEDGER_VERIFY",
                    f"{len(result.failures)} of {result.total_entries} ledger lines failed verification",
                )
        return result
