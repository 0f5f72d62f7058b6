"""HTML/JSON/CSV run artifacts and the email report."""

import csv
import json
import logging
import zipfile
from email.message import EmailMessage
from html import escape
from pathlib import Path

import aiosmtplib

from capture import CaptureStatus
from config import EmailSettings, Settings
from extractor import describe_format
from outcome import DocumentResult, ScenarioOutcome

logger = logging.getLogger(__name__)

TEST_NAME = "Fund Request Workflow"


def _uniqueness(outcome: ScenarioOutcome) -> tuple[str, str]:
    """(css class, verdict) for the Fund Request vs Credit Note number check."""
    if outcome.credit_note and outcome.credit_note.capture_status is CaptureStatus.POSSIBLY_STALE:
        return "warn", f"⚠️ Credit Note only showed {escape(outcome.credit_note.invoice_number or '')}, the Fund Request number; it may not have refreshed"
    distinct = outcome.identifiers_distinct
    if distinct is None:
        return "muted", "Not checked (both numbers are needed)"
    if distinct:
        return "pass", "✅ Invoice numbers are unique"
    return "fail", "⚠️ Fund Request and Credit Note have the same invoice number"


def render_document(doc: DocumentResult | None, label: str, skip_reason: str | None = None) -> str:
    if doc is None:
        reason = escape(skip_reason or "Not created")
        return f"""
    <tr><th>{label}</th><td colspan="4" class="muted">Skipped: {reason}</td></tr>"""
    number = escape(doc.invoice_number or "N/A")
    fmt = describe_format(doc.identifier)
    fmt_class = "pass" if doc.identifier and doc.identifier.well_formed else "warn"
    notes = escape("; ".join(doc.notes)) if doc.notes else ""
    return f"""
    <tr>
      <th>{escape(doc.label)}</th>
      <td><code>{number}</code></td>
      <td class="{fmt_class}">{escape(fmt)}</td>
      <td>{escape(doc.workflow_state.value)}</td>
      <td>{escape(doc.capture_status.value)}{"<br/><small>" + notes + "</small>" if notes else ""}</td>
    </tr>"""


def render_db_validation(outcome: ScenarioOutcome) -> str:
    if not outcome.db_validation:
        return ""
    rows = "".join(
        f"""
    <tr>
      <td>{escape(v.label)}</td><td><code>{escape(v.invoice_number)}</code></td>
      <td class="{'pass' if v.validated else 'fail'}">{'✅ Found' if v.validated else '❌ ' + escape(v.error or 'Not found')}</td>
      <td>{escape(v.status or '')}</td><td>{escape(v.invoice_type or '')}</td><td>{escape(v.created or '')}</td>
    </tr>"""
        for v in outcome.db_validation
    )
    return f"""
  <h2>Database Validation</h2>
  <table>
    <tr><th>Document</th><th>Invoice Number</th><th>Result</th><th>Status</th><th>Type</th><th>Created</th></tr>{rows}
  </table>"""


def render_html_report(outcome: ScenarioOutcome, settings: Settings | None = None) -> str:
    status_class = "pass" if outcome.passed else "fail"
    unique_class, unique_text = _uniqueness(outcome)
    error_block = f"<h2>Failure</h2><pre>{escape(outcome.error_message)}</pre>" if outcome.error_message else ""
    listing = "✅ Transferred listing shows rows" if outcome.transferred_listing_verified else "⚠️ Transferred listing not verified"
    screenshots = "".join(f"<li>{escape(Path(p).name)}</li>" for p in outcome.artifacts) or "<li>None</li>"
    environment = ""
    if settings is not None:
        environment = f"""
  <h2>Environment</h2>
  <ul>
    <li><strong>Base URL:</strong> {escape(settings.base_url)}</li>
    <li><strong>User:</strong> {escape(settings.username)}</li>
    <li><strong>Headless:</strong> {settings.headless}</li>
  </ul>"""

    return f"""
<html><head><title>{TEST_NAME} Report</title>
<style>
body {{ font-family: Arial, sans-serif; padding: 20px; }}
.summary {{ margin-bottom: 16px; }}
.pass {{ color: #0a7b44; }}
.fail {{ color: #b00020; }}
.warn {{ color: #b26a00; }}
.muted {{ color: #777; }}
table {{ border-collapse: collapse; margin-bottom: 16px; }}
th, td {{ border: 1px solid #ddd; padding: 6px 10px; text-align: left; }}
pre {{ background: #f6f8fa; padding: 12px; border-radius: 6px; overflow: auto; }}
</style>
</head><body>
  <h1>{TEST_NAME}: <span class="{status_class}">{escape(outcome.status.upper())}</span></h1>
  <div class="summary">
    <strong>Attempt:</strong> {outcome.attempt} &nbsp; <strong>Duration:</strong> {outcome.duration_s:.1f}s &nbsp; <strong>Timestamp:</strong> {escape(outcome.timestamp)}
  </div>
  <h2>Invoice Numbers</h2>
  <table>
    <tr><th>Document</th><th>Invoice Number</th><th>Format</th><th>Workflow</th><th>Capture</th></tr>{render_document(outcome.fund_request, "Fund Request")}{render_document(outcome.credit_note, "Credit Note", outcome.credit_note_skip_reason)}
  </table>
  <p class="{unique_class}">{unique_text}</p>
  <p>{listing}</p>{render_db_validation(outcome)}
  {error_block}{environment}
  <h2>Screenshots</h2>
  <ul>{screenshots}</ul>
</body></html>
"""


def write_html_report(outcome: ScenarioOutcome, html_path: Path, settings: Settings | None = None) -> Path:
    with open(html_path, "w", encoding="utf-8") as f:
        f.write(render_html_report(outcome, settings))
    return html_path


def write_results_json(outcomes: list[ScenarioOutcome], results_path: Path) -> Path:
    with open(results_path, "w", encoding="utf-8") as f:
        json.dump({"runs": [o.to_dict() for o in outcomes]}, f, indent=2)
    return results_path


def archive_files(zip_path: Path, files: list[Path]):
    with zipfile.ZipFile(zip_path, "w") as zf:
        for f in files:
            if f.exists():
                zf.write(f, arcname=f.name)


def log_to_csv(log_path: Path, timestamp: str, outcome: ScenarioOutcome, artifacts: dict):
    csv_exists = log_path.exists()
    with open(log_path, "a", newline="") as csvfile:
        writer = csv.writer(csvfile)
        if not csv_exists:
            writer.writerow(["Timestamp", "Status", "Attempts", "Fund Request", "Credit Note", "Results", "Report", "Archive"])
        writer.writerow([
            timestamp,
            outcome.status,
            outcome.attempt,
            outcome.fund_request.invoice_number or "",
            outcome.credit_note.invoice_number if outcome.credit_note and outcome.credit_note.invoice_number else "",
            str(artifacts.get("results")),
            str(artifacts.get("report")),
            str(artifacts.get("archive")),
        ])


class EmailReporter:
    """Sends the HTML report with checkpoint screenshots attached."""

    def __init__(self, email: EmailSettings, settings: Settings | None = None):
        self.email = email
        self.settings = settings

    def build_message(self, outcome: ScenarioOutcome) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = f"Playwright Test Automation <{self.email.sender or self.email.user}>"
        msg["To"] = ", ".join(self.email.to)
        msg["Subject"] = f"Test Report: {TEST_NAME} - {outcome.status.upper()}"
        msg.set_content(
            f"{TEST_NAME}: {outcome.status}\n"
            f"Fund Request: {outcome.fund_request.invoice_number or 'N/A'}\n"
            f"Credit Note: {outcome.credit_note.invoice_number if outcome.credit_note else 'skipped'}\n"
        )
        msg.add_alternative(render_html_report(outcome, self.settings), subtype="html")
        for path in outcome.artifacts:
            path = Path(path)
            if not path.exists():
                continue
            msg.add_attachment(path.read_bytes(), maintype="image", subtype="png", filename=path.name)
        return msg

    async def send_report(self, outcome: ScenarioOutcome) -> bool:
        if not self.email.configured:
            logger.warning("⚠️ Email not configured (EMAIL_USER, EMAIL_PASS, EMAIL_TO); report not sent")
            return False
        logger.info(f"📧 Sending test report to {', '.join(self.email.to)}...")
        try:
            await aiosmtplib.send(
                self.build_message(outcome),
                hostname=self.email.host,
                port=self.email.port,
                username=self.email.user,
                password=self.email.password,
                start_tls=self.email.port != 465,
                use_tls=self.email.port == 465,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"❌ Failed to send email: {e}")
            return False
        logger.info("✅ Email sent successfully")
        return True
