"""Command-line interface for the Evidence Forensic Toolkit."""

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from evidence_forensic import __version__
from evidence_forensic.config import LOG_LEVELS, ForensicConfig, load_config
from evidence_forensic.core.analyzer import ForensicAnalyzer
from evidence_forensic.core.assets import DirectoryAssetStore, PackageAssetStore
from evidence_forensic.core.integrity import AssetIntegrityVerifier
from evidence_forensic.core.ledger import EvidenceLedger
from evidence_forensic.core.mesh import DirectiveState, MeshPacketProtocol
from evidence_forensic.core.services import ManualFraudExtraction
from evidence_forensic.models import ForensicSummary, IntegrityStatus
from evidence_forensic.output.json_export import ReportExporter, verify_report_document
from evidence_forensic.output.mailer import SMTPMailer
from evidence_forensic.output.pdf_sealer import PdfSealer
from evidence_forensic.utils.audit import AuditLogger
from evidence_forensic.utils.exceptions import (
    EvidenceForensicError,
    IntegrityError,
    SealingError,
    TransportError,
)

console = Console()


def print_status(status: str, message: str) -> None:
    """Print a status message with consistent formatting.

    Args:
        status: Status indicator ([OK], [FAIL], [WARN], [INFO], [ERROR])
        message: Message to display
    """
    color_map = {
        "[OK]": "green",
        "[FAIL]": "red",
        "[WARN]": "yellow",
        "[INFO]": "blue",
        "[ERROR]": "red bold",
    }
    color = color_map.get(status, "white")
    console.print(f"[{color}]{status}[/{color}] {escape(message)}")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _config(ctx: click.Context) -> ForensicConfig:
    return ctx.obj["config"]


def _audit(ctx: click.Context) -> AuditLogger:
    """Audit logger for this invocation, created on first use."""
    if ctx.obj.get("audit") is None:
        audit = AuditLogger(_config(ctx).log_dir)
        ctx.obj["audit"] = audit
        ctx.call_on_close(audit.close)
    return ctx.obj["audit"]


@click.group()
@click.version_option(version=__version__, prog_name="evidence-forensic")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML or JSON configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str):
    """Evidence Forensic Toolkit - offline, auditable evidence analysis.

    Hash and score evidence files, keep an append-only recovery ledger of
    business-fraud findings and exchange signed directive packets.
    """
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except EvidenceForensicError as e:
        print_status("[ERROR]", str(e))
        sys.exit(1)

    if log_level:
        config = config.model_copy(update={"log_level": log_level.upper()})
    _setup_logging(config.log_level)
    ctx.obj["config"] = config


def _create_progress_callback(verbose: int):
    """Create a progress callback for the analyzer.

    Args:
        verbose: Verbosity level (0=quiet, 1=normal, 2+=detailed)
    """
    step_names = {
        "hash": "SHA-512",
        "score": "Rule Scoring",
        "ledger": "Recovery Ledger",
        "analysis": "Analysis",
    }

    def callback(step: str, status: str, message: str) -> None:
        if verbose < 1:
            return
        step_name = step_names.get(step, step)
        if status == "start":
            if verbose >= 2:
                console.print(f"  [dim][...] {step_name}[/dim]")
        elif status == "complete":
            console.print(f"  [green][OK][/green] {step_name}: {message}")
        elif status == "error":
            console.print(f"  [red][FAIL][/red] {step_name}: {message}")
        elif status == "skip":
            console.print(f"  [yellow][SKIP][/yellow] {step_name}: {message}")

    return callback


def _print_diagnostics_table(diagnostics) -> None:
    table = Table(title="Detection Counts", show_header=True, header_style="bold")
    table.add_column("Category", style="cyan")
    table.add_column("Matches", justify="right")
    for category, count in diagnostics.counts().items():
        table.add_row(category, str(count))
    console.print(table)


def _print_report_table(report, verbose: int) -> None:
    """Print an analysis report as formatted tables."""
    table = Table(title="Evidence", show_header=True, header_style="bold")
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("File", report.file_name)
    if report.evidence_hash:
        table.add_row("SHA-512", report.evidence_hash if verbose else report.evidence_hash[:16] + "...")
    else:
        table.add_row("SHA-512", "[red]unavailable[/red]")
    table.add_row("Jurisdiction", report.jurisdiction)
    table.add_row("Anchor", report.blockchain_anchor or "N/A")
    table.add_row("Analyzed", report.analyzed_at.isoformat())
    console.print(table)
    console.print()

    _print_diagnostics_table(report.behavioral_profile)
    console.print()

    profile = report.behavioral_profile
    color = "red" if report.risk_score >= 0.5 else "yellow" if report.risk_score > 0 else "green"
    body = f"[{color}]Risk Score: {report.risk_score:.2f}[/{color}]\n\n" + "\n".join(report.top_liabilities)
    if report.directive.risk_weight_boost:
        body += f"\n\n[dim]Directive boost: +{report.directive.risk_weight_boost:.2f}[/dim]"
    if profile.scoring_failed:
        body += "\n\n[red bold]Detection could not run; this score is not a finding.[/red bold]"
    console.print(Panel(body, title="Risk Assessment", style="bold"))

    if report.ledger_entry:
        entry = report.ledger_entry
        print_status("[OK]", f"Ledger entry {entry.entry_sha512[:16]}... recorded for {entry.party_name}")
        if entry.sealed_document:
            print_status("[INFO]", f"Sealed: {entry.sealed_document}")

    for error in report.analysis_errors:
        print_status("[WARN]", f"{error.get('operation')}: {error.get('error_message')}")


def _finding_options(func):
    """Options describing an operator-supplied fraud finding."""
    options = [
        click.option("--case-id", help="Case identifier (generated when omitted)"),
        click.option("--party", help="Counterparty name for a fraud finding"),
        click.option("--amount", type=float, help="Fraud amount in --currency"),
        click.option("--currency", default="USD", show_default=True, help="Currency of --amount"),
        click.option("--party-jurisdiction", help="Jurisdiction code of the counterparty"),
        click.option("--no-seal", is_flag=True, help="Do not seal the ledger after recording"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_analyzer(ctx: click.Context, party: str, amount: float, currency: str,
                    party_jurisdiction: str, no_seal: bool, verbose: int = 0) -> ForensicAnalyzer:
    config = _config(ctx)
    extractor = None
    if party or amount is not None:
        extractor = ManualFraudExtraction(party, amount, currency, party_jurisdiction)

    return ForensicAnalyzer(
        config=config,
        fraud_extractor=extractor,
        sealing_service=None if no_seal else PdfSealer(config.sealed_dir),
        audit_logger=_audit(ctx),
        progress_callback=_create_progress_callback(verbose),
    )


@main.command()
@click.argument("filepath", type=click.Path(exists=True, dir_okay=False))
@_finding_options
@click.option("-o", "--output", help="Output file path for JSON report")
@click.option("-f", "--format", "output_format", type=click.Choice(["json", "table"]), default="table")
@click.option("-v", "--verbose", count=True, help="Verbosity level")
@click.pass_context
def analyze(ctx: click.Context, filepath: str, case_id: str, party: str, amount: float, currency: str,
            party_jurisdiction: str, no_seal: bool, output: str, output_format: str, verbose: int):
    """Perform full forensic analysis on an evidence file.

    FILEPATH is the path to the file to analyze. Supplying --party and
    --amount records a finding in the recovery ledger when the party is a
    business.
    """
    file_path = Path(filepath)
    if output_format == "table":
        console.print(Panel(f"[bold]Evidence Analysis[/bold]\nFile: {file_path.name}", style="blue"))

    try:
        analyzer = _build_analyzer(ctx, party, amount, currency, party_jurisdiction, no_seal, verbose)
        report = analyzer.analyze(file_path, case_id=case_id)

        if output_format == "json" or output:
            exporter = ReportExporter(indent=2)
            if output:
                exporter.to_file(report, output)
                print_status("[OK]", f"Report saved to: {output}")
            else:
                click.echo(exporter.to_json(report))
        else:
            _print_report_table(report, verbose)

    except SealingError as e:
        print_status("[ERROR]", str(e))
        console.print("  [dim]The ledger line was written; only the attestation failed.[/dim]")
        sys.exit(1)
    except EvidenceForensicError as e:
        print_status("[ERROR]", str(e))
        sys.exit(1)


@main.command()
@click.argument("filepath", type=click.Path(exists=True, dir_okay=False))
@click.option("-f", "--format", "output_format", type=click.Choice(["json", "table"]), default="table")
@click.pass_context
def score(ctx: click.Context, filepath: str, output_format: str):
    """Score a file against the detection rules without recording anything."""
    analyzer = ForensicAnalyzer(config=_config(ctx))
    diagnostics = analyzer.score(filepath)

    if output_format == "json":
        click.echo(json.dumps(diagnostics.model_dump(), indent=2))
    else:
        _print_diagnostics_table(diagnostics)
        print_status(
            "[FAIL]" if diagnostics.scoring_failed else "[INFO]",
            f"Risk score {diagnostics.risk_score:.2f}: {', '.join(diagnostics.liabilities)}",
        )

    sys.exit(1 if diagnostics.scoring_failed else 0)


@main.command(name="verify-report")
@click.argument("report_path", type=click.Path(exists=True, dir_okay=False))
def verify_report(report_path: str):
    """Check an exported JSON report against its embedded SHA-512."""
    try:
        document = json.loads(Path(report_path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        print_status("[ERROR]", f"Cannot read report: {e}")
        sys.exit(1)

    if verify_report_document(document):
        print_status("[OK]", f"Report {document['report_sha512'][:16]}... is unaltered")
        sys.exit(0)
    print_status("[FAIL]", "Report content does not match its report_sha512")
    sys.exit(1)


@main.command(name="verify-assets")
@click.option(
    "--asset-dir",
    type=click.Path(exists=True, file_okay=False),
    help="Verify assets in this directory instead of the bundled package data",
)
@click.pass_context
def verify_assets(ctx: click.Context, asset_dir: str):
    """Check bundled rule and reference assets against their expected SHA-512."""
    store = DirectoryAssetStore(asset_dir) if asset_dir else PackageAssetStore()
    verifier = AssetIntegrityVerifier(store=store, audit_logger=_audit(ctx))

    try:
        result = verifier.verify()
    except EvidenceForensicError as e:
        print_status("[ERROR]", str(e))
        sys.exit(1)

    table = Table(title="Asset Integrity", show_header=True, header_style="bold")
    table.add_column("Asset", style="cyan")
    table.add_column("Status")
    status_colors = {
        IntegrityStatus.OK: "green",
        IntegrityStatus.TAMPERED: "red",
        IntegrityStatus.UNREADABLE: "yellow",
    }
    for asset_path, check in result.results.items():
        color = status_colors[check.status]
        table.add_row(asset_path, f"[{color}]{check.describe()}[/{color}]")
    console.print(table)

    if result.all_ok:
        print_status("[OK]", "All assets verified")
        sys.exit(0)
    print_status("[FAIL]", "Asset integrity could not be confirmed")
    sys.exit(1)


@main.group()
def ledger():
    """Inspect and verify the recovery ledger."""


@ledger.command(name="verify")
@click.pass_context
def ledger_verify(ctx: click.Context):
    """Recompute every ledger entry's SHA-512 from its own fields."""
    config = _config(ctx)
    recovery_ledger = EvidenceLedger(config.ledger_path, audit_logger=_audit(ctx))

    try:
        result = recovery_ledger.verify()
    except EvidenceForensicError as e:
        print_status("[ERROR]", str(e))
        sys.exit(1)

    if result.total_entries == 0:
        print_status("[INFO]", f"Ledger is empty: {config.ledger_path}")
        return

    for failure in result.failures:
        print_status("[FAIL]", f"Line {failure.line_number}: {failure.reason}")

    if result.is_valid:
        print_status("[OK]", f"{result.valid_entries} ledger entries verified")
    else:
        print_status("[FAIL]", f"{len(result.failures)} of {result.total_entries} entries failed verification")
        sys.exit(1)


@ledger.command(name="show")
@click.option("-n", "--limit", type=int, default=20, show_default=True, help="Show the last N entries")
@click.option("-f", "--format", "output_format", type=click.Choice(["json", "table"]), default="table")
@click.pass_context
def ledger_show(ctx: click.Context, limit: int, output_format: str):
    """List recent ledger entries."""
    config = _config(ctx)
    try:
        entries = EvidenceLedger(config.ledger_path).read_entries()
    except EvidenceForensicError as e:
        print_status("[ERROR]", str(e))
        sys.exit(1)

    entries = entries[-limit:] if limit > 0 else entries
    if output_format == "json":
        click.echo(json.dumps([entry.to_record() for entry in entries], indent=2, ensure_ascii=False))
        return

    if not entries:
        print_status("[INFO]", "No ledger entries")
        return

    table = Table(title="Recovery Ledger", show_header=True, header_style="bold")
    table.add_column("Case", style="cyan")
    table.add_column("Party")
    table.add_column("Amount", justify="right")
    table.add_column("USD", justify="right")
    table.add_column("Detected")
    table.add_column("Entry SHA-512")
    for entry in entries:
        table.add_row(
            entry.case_id,
            entry.party_name,
            f"{entry.fraud_amount:,.2f} {entry.currency}",
            f"{entry.fraud_amount_usd:,.2f}",
            entry.detected_at,
            entry.entry_sha512[:16] + "...",
        )
    console.print(table)


@main.group()
def mesh():
    """Exchange signed directive packets with other installations."""


def _mesh_protocol(config: ForensicConfig, audit: AuditLogger) -> MeshPacketProtocol:
    return MeshPacketProtocol(
        schema=config.mesh_schema,
        template_version=config.template_version,
        app_version=config.app_version,
        audit_logger=audit,
    )


@mesh.command(name="export")
@click.argument("filepath", type=click.Path(exists=True, dir_okay=False))
@_finding_options
@click.option("-o", "--output-dir", type=click.Path(file_okay=False), help="Directory for the packet file")
@click.option("--email", is_flag=True, help="Also send the packet with a report summary via SMTP")
@click.pass_context
def mesh_export(ctx: click.Context, filepath: str, case_id: str, party: str, amount: float, currency: str,
                party_jurisdiction: str, no_seal: bool, output_dir: str, email: bool):
    """Analyze FILEPATH and export its directives as a signed packet.

    Packets are only built from verified detection rules. With --party and
    --amount the resulting ledger entry travels in the emailed packet.
    """
    config = _config(ctx)
    audit = _audit(ctx)
    protocol = _mesh_protocol(config, audit)

    try:
        AssetIntegrityVerifier(audit_logger=audit).require_intact()

        analyzer = _build_analyzer(ctx, party, amount, currency, party_jurisdiction, no_seal)
        report = analyzer.analyze(filepath, case_id=case_id)
        if report.behavioral_profile.scoring_failed:
            print_status("[WARN]", "Scoring failed; packet stats are zero")
        if report.ledger_entry:
            print_status("[OK]", f"Ledger entry {report.ledger_entry.entry_sha512[:16]}... recorded")

        packet = protocol.build_packet(report.directive.flags, report.behavioral_profile)
        path = protocol.export_to_file(packet, output_dir or config.mesh_dir)
        print_status("[OK]", f"Packet written to: {path}")

        if email:
            document = protocol.export_for_transport(
                packet,
                ForensicSummary.from_report(report),
                report.ledger_entry,
                SMTPMailer(config.smtp),
            )
            print_status("[OK]", f"Packet {document['sha512'][:16]}... sent to {config.smtp.recipient}")
    except IntegrityError as e:
        print_status("[FAIL]", f"{e}; run verify-assets for details")
        sys.exit(1)
    except TransportError as e:
        print_status("[FAIL]", str(e))
        audit.log_error("MESH_PACKET_EXPORT", e)
        sys.exit(1)
    except EvidenceForensicError as e:
        print_status("[ERROR]", str(e))
        sys.exit(1)


@mesh.command(name="import")
@click.argument("packet_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def mesh_import(ctx: click.Context, packet_path: str):
    """Verify a packet and merge its directive flags into local state."""
    config = _config(ctx)
    protocol = _mesh_protocol(config, _audit(ctx))

    try:
        payload = Path(packet_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print_status("[ERROR]", f"Cannot read packet: {e}")
        sys.exit(1)

    state = DirectiveState.load(config.directive_state_path)
    result = protocol.import_packet(payload, state)
    if not result.verified:
        print_status("[FAIL]", f"Packet rejected ({result.status.value}): {result.reason}")
        sys.exit(1)
    if not result.applied:
        print_status("[ERROR]", f"Packet verified but not applied: {result.reason}")
        sys.exit(1)

    print_status("[OK]", f"Packet verified ({result.claimed_sha512[:16]}...)")
    raised = state.directives.raised()
    print_status("[INFO]", f"Active directives: {', '.join(raised) if raised else 'none'}")


@mesh.command(name="show-directives")
@click.pass_context
def mesh_show_directives(ctx: click.Context):
    """Show the locally merged directive flags."""
    state = DirectiveState.load(_config(ctx).directive_state_path)

    table = Table(title="Directive Flags", show_header=True, header_style="bold")
    table.add_column("Flag", style="cyan")
    table.add_column("Set")
    for name, value in state.directives.as_dict().items():
        table.add_row(name, "[green]yes[/green]" if value else "[dim]no[/dim]")
    console.print(table)


@main.command()
@click.argument("filepath", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output-dir", type=click.Path(file_okay=False), help="Directory for the sealed PDF")
@click.option("--examiner", help="Examiner name for the attestation block")
@click.pass_context
def seal(ctx: click.Context, filepath: str, output_dir: str, examiner: str):
    """Produce a sealed PDF attestation of FILEPATH's SHA-512."""
    config = _config(ctx)
    sealer = PdfSealer(output_dir or config.sealed_dir, examiner_name=examiner)
    try:
        sealed = sealer.seal(filepath)
    except SealingError as e:
        print_status("[ERROR]", str(e))
        sys.exit(1)

    _audit(ctx).log_seal(filepath, sealed)
    print_status("[OK]", f"Sealed PDF: {sealed}")


@main.group()
def audit():
    """Review the forensic audit trail."""


@audit.command(name="export")
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("--format", "output_format", type=click.Choice(["json", "csv", "txt"]), default="json")
@click.option("--case-id", help="Only export events for this case")
@click.pass_context
def audit_export(ctx: click.Context, output: str, output_format: str, case_id: str):
    """Export the audit trail to OUTPUT."""
    _audit(ctx).export_audit_trail(Path(output), case_id=case_id, format=output_format)
    print_status("[OK]", f"Audit trail exported to: {output}")


@main.command()
def info():
    """Display tool information and capabilities."""
    console.print(Panel(
        f"[bold]Evidence Forensic Toolkit[/bold] v{__version__}\n\n"
        "[bold]Analysis:[/bold]\n"
        "  [*] SHA-512 evidence hashing\n"
        "  [*] Rule-based risk scoring (JSON/YAML rule documents)\n"
        "  [*] Directive synthesis from detection counts\n\n"
        "[bold]Integrity:[/bold]\n"
        "  [*] Bundled asset tamper detection\n"
        "  [*] Append-only recovery ledger with per-entry SHA-512\n"
        "  [*] Sealed PDF attestations\n"
        "  [*] Digest-stamped JSON reports\n"
        "  [*] Forensic-grade audit logging\n\n"
        "[bold]Exchange:[/bold]\n"
        "  [*] Signed mesh packets (file or SMTP)\n"
        "  [*] Verified, idempotent directive merge\n\n"
        "[dim]Offline by design; nothing leaves the machine unless exported[/dim]",
        title="About",
        style="blue",
    ))


if __name__ == "__main__":
    main()
