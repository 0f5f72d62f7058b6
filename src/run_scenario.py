#!/usr/bin/env python3

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

from config import ConfigError, Settings, load_settings
from invoice_db import InvoiceDatabase
from outcome import ScenarioOutcome
from report import EmailReporter, archive_files, log_to_csv, write_html_report, write_results_json
from runner import run_browser_scenario


async def run_with_retries(settings: Settings, run_dir: Path) -> list[ScenarioOutcome]:
    reporter = EmailReporter(settings.email, settings) if settings.send_email else None
    invoice_db = InvoiceDatabase.from_settings(settings.sql) if settings.validate_db else None
    outcomes: list[ScenarioOutcome] = []
    try:
        for attempt in range(1, settings.retries + 2):
            if attempt > 1:
                print(f"🔁 Retrying scenario (attempt {attempt}/{settings.retries + 1})...")
            outcome = await run_browser_scenario(settings, run_dir, attempt, reporter, invoice_db)
            outcomes.append(outcome)
            if outcome.passed:
                break
    finally:
        if invoice_db is not None:
            invoice_db.dispose()
    return outcomes


def main():
    parser = argparse.ArgumentParser(description="Fund Request → Workflow → Credit Note acceptance runner")
    parser.add_argument("--base-url", help="Base URL under test (default: APP_BASE_URL)")
    parser.add_argument("--env-file", help="Path to a .env file (default: ./.env if present)")
    parser.add_argument("--headful", action="store_true", help="Run browser headful for debugging")
    parser.add_argument("--verbose", action="store_true", help="Log selector probes and extraction details")
    parser.add_argument("--no-credit-note", action="store_true", help="Stop after the Fund Request workflow")
    parser.add_argument("--no-email", action="store_true", help="Do not email the report")
    parser.add_argument("--validate-db", action="store_true", help="Look the captured invoice numbers up in ARInvoice")
    parser.add_argument("--timeout", type=int, help="Scenario time budget in seconds (default: SCENARIO_TIMEOUT_S)")
    parser.add_argument("--retries", type=int, help="Extra attempts after a failed run (default: RETRIES)")
    parser.add_argument("--output-dir", help="Where run directories are created (default: OUTPUT_DIR)")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(
            args.env_file,
            base_url=args.base_url,
            headless=False if args.headful else None,
            create_credit_note=False if args.no_credit_note else None,
            validate_db=True if args.validate_db else None,
            send_email=False if args.no_email else None,
            scenario_timeout_s=args.timeout,
            retries=args.retries,
            output_dir=Path(args.output_dir) if args.output_dir else None,
        )
    except ConfigError as e:
        raise SystemExit(f"Configuration error: {e}")

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = settings.output_dir / f"run_{timestamp}"
    run_dir.mkdir(parents=True, exist_ok=True)

    print("🏃 Running Fund Request scenario with Playwright...")
    try:
        outcomes = asyncio.run(run_with_retries(settings, run_dir))
    except ConfigError as e:
        raise SystemExit(f"Configuration error: {e}")
    final = outcomes[-1]

    results_path = write_results_json(outcomes, run_dir / "results.json")
    print(f"📊 Results written: {results_path}")
    artifacts = {"results": results_path}

    report_path = write_html_report(final, run_dir / "report.html", settings)
    artifacts["report"] = report_path
    print(f"📝 HTML report: {report_path}")

    archive_path = run_dir / "archive.zip"
    archive_files(archive_path, [results_path, report_path] + [Path(p) for o in outcomes for p in o.artifacts])
    artifacts["archive"] = archive_path
    print(f"📦 Archive: {archive_path}")

    log_to_csv(settings.output_dir / "run_log.csv", timestamp, final, artifacts)

    # Final console summary
    print(f"Fund Request: {final.fund_request.invoice_number or 'N/A'} ({final.fund_request.workflow_state.value})")
    if final.credit_note:
        print(f"Credit Note: {final.credit_note.invoice_number or 'N/A'} ({final.credit_note.workflow_state.value})")
    else:
        print(f"Credit Note: skipped ({final.credit_note_skip_reason})")
    if final.passed:
        print(f"✅ Done. {final.status} in {final.duration_s:.1f}s after {len(outcomes)} attempt(s)")
    else:
        print(f"✖ Done. {final.status} after {len(outcomes)} attempt(s): {final.error_message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
