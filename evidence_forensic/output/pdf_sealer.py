"""
Sealed PDF attestations.

Renders a one-page PDF stating the SHA-512 of a file at the moment of
sealing. The recovery ledger is sealed after every append so that each
ledger state has an external attestation.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Union

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from reportlab.platypus.doctemplate import LayoutError

from evidence_forensic import __version__
from evidence_forensic.utils.exceptions import EvidenceIOError, SealingError
from evidence_forensic.utils.hashing import sha512_file

logger = logging.getLogger(__name__)


class PdfSealer:
    """Writes sealed attestation PDFs into an output directory."""

    def __init__(
        self,
        output_dir: Union[str, Path],
        examiner_name: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the sealer.

        Args:
            output_dir: Directory for sealed PDFs (created on demand)
            examiner_name: Name printed in the attestation block
            clock: Returns the current UTC time (injectable for tests)
        """
        self.output_dir = Path(output_dir)
        self.examiner_name = examiner_name or "Forensic Examiner"
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.styles = getSampleStyleSheet()
        self.styles.add(ParagraphStyle(
            name="SealTitle",
            parent=self.styles["Heading1"],
            fontSize=18,
            alignment=TA_CENTER,
            spaceAfter=20,
            textColor=colors.HexColor("#1a1a1a"),
        ))

    def seal(self, file_path: Union[str, Path]) -> str:
        """
        Produce a sealed PDF for ``file_path``.

        Returns:
            Path of the sealed PDF, as a string

        Raises:
            SealingError: If the file cannot be hashed or the PDF cannot be written
        """
        file_path = Path(file_path)
        try:
            digest = sha512_file(file_path)
        except EvidenceIOError as e:
            raise SealingError(str(file_path), e.reason, cause=e)

        sealed_at = self._clock()
        output_path = self.output_dir / f"sealed_{file_path.stem}_{int(sealed_at.timestamp() * 1000)}.pdf"

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            doc = SimpleDocTemplate(
                str(output_path),
                pagesize=A4,
                rightMargin=0.75 * inch,
                leftMargin=0.75 * inch,
                topMargin=0.75 * inch,
                bottomMargin=0.75 * inch,
            )
            doc.build(self._build_story(file_path, digest, sealed_at))
        except (OSError, LayoutError) as e:
            raise SealingError(str(file_path), "Could not write sealed PDF", cause=e)

        logger.info(f"Sealed {file_path.name} -> {output_path}")
        return str(output_path)

    def _build_story(self, file_path: Path, digest: str, sealed_at: datetime) -> List:
        styles = self.styles
        elements = [
            Paragraph("Sealed Evidence Attestation", styles["SealTitle"]),
            Paragraph(
                f"The SHA-512 value below was computed by Evidence Forensic Toolkit "
                f"v{__version__} at the time of sealing and can be used to verify that "
                f"the file has not changed since.",
                styles["Normal"],
            ),
            Spacer(1, 0.3 * inch),
        ]

        data = [
            ["Property", "Value"],
            ["File", file_path.name],
            ["Size", f"{file_path.stat().st_size:,} bytes"],
            ["SHA-512", f"{digest[:64]}\n{digest[64:]}"],
            ["Sealed At", sealed_at.strftime("%Y-%m-%d %H:%M:%S UTC")],
        ]
        if file_path.suffix == ".jsonl":
            with open(file_path, "r", encoding="utf-8", errors="replace") as f:
                data.append(["Entries", str(sum(1 for line in f if line.strip()))])

        table = Table(data, colWidths=[1.3 * inch, 5.2 * inch])
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2c3e50")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTNAME", (0, 1), (0, -1), "Helvetica-Bold"),
            ("FONTNAME", (1, 3), (1, 3), "Courier"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]))
        elements.append(table)
        elements.append(Spacer(1, 0.5 * inch))

        signature = Table(
            [["Examiner:", self.examiner_name], ["Signature:", "_" * 40], ["Date:", "_" * 40]],
            colWidths=[1.3 * inch, 4 * inch],
        )
        signature.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 16),
        ]))
        elements.append(signature)
        return elements
