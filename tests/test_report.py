import csv
import json
import zipfile
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from capture import CaptureStatus
from config import EmailSettings, Settings
from extractor import InvoiceIdentifier
from outcome import DocumentResult, InvoiceValidation, ScenarioRecorder
from report import EmailReporter, archive_files, log_to_csv, render_html_report, write_results_json
from workflow import WorkflowState

EMAIL = EmailSettings(host="smtp.test", port=587, user="bot@example.com", password="secret", to=("qa@example.com",))


def outcome(tmp_path=None, credit=("ASH25100299", CaptureStatus.UNIQUE), error=None, validations=()):
    recorder = ScenarioRecorder(
        fund_request=DocumentResult("Fund Request", InvoiceIdentifier("ASH25100262", "ref-no"), CaptureStatus.UNIQUE, WorkflowState.TRANSFERRED),
    )
    if credit:
        number, status = credit
        recorder.credit_note = DocumentResult("Credit Note", InvoiceIdentifier(number, "canonical"), status, WorkflowState.APPROVED)
    else:
        recorder.skip_credit_note("Options menu not available on the Fund Request")
    if error:
        recorder.fail(error)
    recorder.db_validation.extend(validations)
    shots = []
    if tmp_path is not None:
        shot = tmp_path / "01-after_login.png"
        shot.write_bytes(b"\x89PNG fake")
        shots.append(shot)
    return recorder.finish(shots)


def test_report_shows_numbers_and_uniqueness():
    html = render_html_report(outcome())
    assert "PASSED" in html
    assert "ASH25100262" in html and "ASH25100299" in html
    assert "correct 3-letter + 8-digit format" in html
    assert "Invoice numbers are unique" in html
    assert "Transferred" in html and "Approved" in html


def test_report_flags_possibly_stale_credit_note():
    html = render_html_report(outcome(credit=("ASH25100262", CaptureStatus.POSSIBLY_STALE)))
    assert "PossiblyStaleMatch" in html
    assert "may not have refreshed" in html


def test_report_shows_skip_reason_and_failure():
    html = render_html_report(outcome(credit=None, error="SaveButton not found after 2 selector(s)"))
    assert "FAILED" in html
    assert "Skipped: Options menu not available" in html
    assert "SaveButton not found" in html
    assert "Not checked" in html


def test_report_escapes_error_text():
    html = render_html_report(outcome(error="<script>alert(1)</script>"))
    assert "<script>" not in html


def test_report_database_table_and_environment():
    validations = (
        InvoiceValidation("Fund Request", "ASH25100262", True, status="Transferred", invoice_type="FR"),
        InvoiceValidation("Credit Note", "ASH25100299", False, error="Not found"),
    )
    settings = Settings(base_url="https://app.test", username="tester", password="pw")
    html = render_html_report(outcome(validations=validations), settings)
    assert "Database Validation" in html
    assert "❌ Not found" in html
    assert "https://app.test" in html
    assert "pw" not in html.split("Environment")[1]


def test_write_results_json(tmp_path):
    path = write_results_json([outcome(error="boom"), outcome()], tmp_path / "results.json")
    data = json.loads(path.read_text(encoding="utf-8"))
    assert [r["status"] for r in data["runs"]] == ["Failed", "Passed"]


def test_archive_skips_missing_files(tmp_path):
    present = tmp_path / "report.html"
    present.write_text("<html></html>", encoding="utf-8")
    archive_files(tmp_path / "archive.zip", [present, tmp_path / "missing.json"])
    with zipfile.ZipFile(tmp_path / "archive.zip") as zf:
        assert zf.namelist() == ["report.html"]


def test_log_to_csv_writes_header_once(tmp_path):
    log = tmp_path / "run_log.csv"
    log_to_csv(log, "20251031_120000", outcome(), {"results": "r.json"})
    log_to_csv(log, "20251031_130000", outcome(credit=None), {})
    rows = list(csv.reader(log.open(newline="")))
    assert rows[0][0] == "Timestamp"
    assert len(rows) == 3
    assert rows[1][3:5] == ["ASH25100262", "ASH25100299"]
    assert rows[2][4] == ""


def test_email_message_has_html_and_screenshots(tmp_path):
    message = EmailReporter(EMAIL).build_message(outcome(tmp_path))
    assert message["Subject"] == "Test Report: Fund Request Workflow - PASSED"
    assert message["To"] == "qa@example.com"
    attachments = list(message.iter_attachments())
    assert [a.get_filename() for a in attachments] == ["01-after_login.png"]
    assert message.get_body(preferencelist=("html",)) is not None


@pytest.mark.asyncio
async def test_send_report_uses_smtp(tmp_path):
    with patch("report.aiosmtplib.send", new=AsyncMock(return_value=None)) as send:
        assert await EmailReporter(EMAIL).send_report(outcome(tmp_path)) is True
    send.assert_awaited_once()
    assert send.await_args.kwargs["hostname"] == "smtp.test"
    assert send.await_args.kwargs["start_tls"] is True


@pytest.mark.asyncio
async def test_send_report_failure_returns_false():
    with patch("report.aiosmtplib.send", new=AsyncMock(side_effect=aiosmtplib.SMTPException("refused"))):
        assert await EmailReporter(EMAIL).send_report(outcome()) is False


@pytest.mark.asyncio
async def test_send_report_unconfigured_skips_smtp():
    with patch("report.aiosmtplib.send", new=AsyncMock()) as send:
        assert await EmailReporter(EmailSettings()).send_report(outcome()) is False
    send.assert_not_awaited()
