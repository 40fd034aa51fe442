"""JSON export of forensic reports.

An exported report carries ``report_sha512``: the SHA-512 of the canonical
JSON of every other field, in export order. ``verify_report_document``
recomputes it, so a report handed to a third party can be checked for edits
the same way a mesh packet is.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from evidence_forensic.models import ForensicReport
from evidence_forensic.utils.canonical import canonical_sha512
from evidence_forensic.utils.exceptions import EvidenceIOError
from evidence_forensic.utils.hashing import digests_match

logger = logging.getLogger(__name__)

DIGEST_FIELD = "report_sha512"


class ReportExporter:
    """Exporter for forensic reports to digest-stamped JSON."""

    def __init__(self, indent: Optional[int] = 2):
        """Initialize the exporter.

        Args:
            indent: Number of spaces for indentation; None for a single line
        """
        self.indent = indent

    def to_dict(self, report: ForensicReport) -> Dict[str, Any]:
        """Convert a report to plain JSON types with its digest appended."""
        data = report.model_dump(mode="json")
        # Ledger entries are exported in their on-disk field order
        if report.ledger_entry is not None:
            record = report.ledger_entry.to_record()
            if report.ledger_entry.sealed_document:
                record["sealed_document"] = report.ledger_entry.sealed_document
            data["ledger_entry"] = record
        data["degraded"] = report.degraded
        data[DIGEST_FIELD] = canonical_sha512(data)
        return data

    def to_json(self, report: ForensicReport) -> str:
        return json.dumps(self.to_dict(report), indent=self.indent, ensure_ascii=False, allow_nan=False)

    def to_file(self, report: ForensicReport, file_path: Union[str, Path]) -> Path:
        """Save a report as UTF-8 JSON.

        Raises:
            EvidenceIOError: If the file cannot be written
        """
        file_path = Path(file_path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(self.to_json(report) + "\n", encoding="utf-8")
        except OSError as e:
            raise EvidenceIOError(str(file_path), e.strerror or str(e), cause=e)

        logger.info(f"Report exported to {file_path}")
        return file_path


def verify_report_document(document: Any) -> bool:
    """Return True if an exported report still matches its ``report_sha512``."""
    if not isinstance(document, dict):
        return False
    claimed = document.get(DIGEST_FIELD)
    if not isinstance(claimed, str):
        return False

    body = {key: value for key, value in document.items() if key != DIGEST_FIELD}
    try:
        computed = canonical_sha512(body)
    except (TypeError, ValueError):
        return False
    return digests_match(claimed, computed)


def export_report(
    report: ForensicReport,
    output_path: Optional[Union[str, Path]] = None,
    indent: Optional[int] = 2,
) -> str:
    """Export a report to a JSON string, also writing it when ``output_path`` is given."""
    exporter = ReportExporter(indent=indent)
    if output_path:
        exporter.to_file(report, output_path)
    return exporter.to_json(report)
