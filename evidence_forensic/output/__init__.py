"""Output generation modules for evidence forensic analysis.

This package provides digest-stamped JSON export of reports, sealed PDF
attestations and SMTP transport of signed mesh packets.
"""

from evidence_forensic.output.json_export import ReportExporter, export_report, verify_report_document
from evidence_forensic.output.mailer import SMTPMailer
from evidence_forensic.output.pdf_sealer import PdfSealer

__all__ = [
    "ReportExporter",
    "export_report",
    "verify_report_document",
    "SMTPMailer",
    "PdfSealer",
]
