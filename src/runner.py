"""Fund Request → workflow → Credit Note scenario against a live browser page.

ScenarioRunner drives one attempt on an already open page and always comes
back with a ScenarioOutcome; run_browser_scenario owns the browser around it.
"""

import asyncio
import logging
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright
from sqlalchemy.exc import SQLAlchemyError

import extractor
from artifacts import ArtifactStore
from capture import CapturePolicy, CaptureStatus, capture_after_save, poll_approved_identifier
from config import Settings
from errors import CollaboratorFault, ControlNotFound, ScenarioError
from forms import fill_combo, fill_period, require, set_due_date
from locators import Fault, Found, click_target, describe_visible_controls, is_fault, is_present, resolve
from outcome import DocumentResult, InvoiceValidation, ScenarioOutcome, ScenarioRecorder
from targets import GRID_ROWS, Catalogue, load_overrides
from workflow import WorkflowDriver, WorkflowState

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1920, "height": 1080}
MENU_ATTEMPTS = 3
OPTIONS_ATTEMPTS = 3

# Scroll positions tried while looking for the Options button
_SCROLLS = ("window.scrollTo(0, 0)", "window.scrollTo(0, document.body.scrollHeight / 2)", "window.scrollTo(0, 0)")


class ScenarioRunner:
    def __init__(self, page, settings: Settings, catalogue: Catalogue | None = None, reporter=None, artifacts: ArtifactStore | None = None, invoice_db=None, attempt: int = 1):
        self.page = page
        self.settings = settings
        self.catalogue = catalogue or Catalogue()
        self.reporter = reporter
        self.artifacts = artifacts or ArtifactStore(settings.output_dir / "screenshots")
        self.invoice_db = invoice_db
        self.recorder = ScenarioRecorder(attempt=attempt)
        self.policy = CapturePolicy(
            attempts=settings.capture_attempts,
            interval_ms=settings.capture_interval_ms,
            probe_timeout_ms=max(settings.probe_timeout_ms, 3000),
        )

    @property
    def probe_ms(self) -> int:
        return self.settings.probe_timeout_ms

    @property
    def settle_ms(self) -> int:
        return self.settings.settle_ms

    async def run(self) -> ScenarioOutcome:
        """Run the whole scenario within the time budget and report it once."""
        logger.info(f"🚀 Starting Fund Request scenario (attempt {self.recorder.attempt}) against {self.settings.base_url}")
        try:
            await asyncio.wait_for(self._scenario(), timeout=self.settings.scenario_timeout_s)
        except asyncio.TimeoutError:
            self.recorder.fail(f"Scenario exceeded its {self.settings.scenario_timeout_s}s time budget")
        except ScenarioError as e:
            self.recorder.fail(str(e))
        except PlaywrightError as e:
            self.recorder.fail(f"Browser error: {e}")
        except Exception as e:
            logger.exception("Unexpected error during scenario")
            self.recorder.fail(f"{type(e).__name__}: {e}")
        finally:
            outcome = await self._conclude()
        return outcome

    async def _conclude(self) -> ScenarioOutcome:
        if self.recorder.error_message:
            logger.error(f"❌ Scenario failed: {self.recorder.error_message} (url={self._current_url()})")
            await self.artifacts.capture(self.page, "failure")
        elif self.settings.screenshot_mode == "on":
            await self.artifacts.capture(self.page, "final")
        if self.invoice_db is not None:
            await self._validate_in_database()

        outcome = self.recorder.finish(self.artifacts.checkpoints)
        logger.info(f"🏁 Scenario {outcome.status} in {outcome.duration_s:.1f}s")
        if self.reporter is not None:
            try:
                await self.reporter.send_report(outcome)
            except Exception as e:
                logger.error(f"❌ Reporter failed: {e}")
        return outcome

    def _current_url(self) -> str:
        try:
            return self.page.url
        except PlaywrightError:
            return ""

    async def _scenario(self) -> None:
        await self.login()
        await self.artifacts.capture(self.page, "after-login")

        await self.open_fund_request()
        await self.artifacts.capture(self.page, "fund-request-form")
        await self.fill_fund_request()

        fund_request = await self.process_document("Fund Request", extractor.FUND_REQUEST_TEXT)
        self.recorder.fund_request = fund_request

        if not self.settings.create_credit_note:
            self.recorder.skip_credit_note("Credit Note creation disabled")
        else:
            await self.create_credit_note(excluded=fund_request.identifier)

        self.recorder.transferred_listing_verified = await self.verify_transferred_listing()

    async def login(self) -> None:
        logger.info(f"🔐 Logging in as {self.settings.username}")
        await self.page.goto(self.settings.base_url)
        await self.page.wait_for_load_state("networkidle")
        username = await require(self.page, self.catalogue.USERNAME_FIELD, self.probe_ms * 5)
        await username.fill(self.settings.username)
        password = await require(self.page, self.catalogue.PASSWORD_FIELD, self.probe_ms)
        await password.fill(self.settings.password)
        button = await require(self.page, self.catalogue.LOGIN_BUTTON, self.probe_ms)
        await button.click()
        await self.page.wait_for_load_state("networkidle")
        logger.info("✅ Logged in")

    async def _open_new_menu(self) -> None:
        opened = await click_target(self.page, self.catalogue.NEW_MENU, self.probe_ms * 5)
        if isinstance(opened, Fault):
            raise CollaboratorFault(f"{opened.target}: {opened.reason}")
        if not isinstance(opened, Found):
            raise ControlNotFound(opened.target, opened.tried)
        await self.page.wait_for_timeout(self.settle_ms)
        # The menu may lead with Release Notes; its dialog has to be closed before the menu behaves
        if await is_present(self.page, self.catalogue.RELEASE_NOTES, self.probe_ms):
            logger.info("📰 Release Notes offered, opening and closing it")
            await click_target(self.page, self.catalogue.RELEASE_NOTES, self.probe_ms)
            await self.page.wait_for_timeout(self.settle_ms)
            await click_target(self.page, self.catalogue.CLOSE_BUTTON, self.probe_ms)
            await self.page.wait_for_timeout(self.settle_ms)
            await click_target(self.page, self.catalogue.NEW_MENU, self.probe_ms)
            await self.page.wait_for_timeout(self.settle_ms)

    async def open_fund_request(self) -> None:
        item = self.catalogue.menu_item("Fund Request")
        before = len(self.page.context.pages)
        for attempt in range(1, MENU_ATTEMPTS + 1):
            await self._open_new_menu()
            result = await click_target(self.page, item, self.probe_ms)
            if isinstance(result, Found):
                break
            if isinstance(result, Fault):
                raise CollaboratorFault(f"{result.target}: {result.reason}")
            logger.warning(f"⚠️ Fund Request not in New menu (attempt {attempt}/{MENU_ATTEMPTS})")
        else:
            logger.debug(f"Visible controls: {await describe_visible_controls(self.page)}")
            raise ControlNotFound(item.name, len(item.candidates))
        await self._adopt_new_tab(before)
        logger.info("✅ Fund Request form opened")

    async def _adopt_new_tab(self, before: int, checks: int = 5) -> bool:
        """Switch to a tab opened since `before` pages existed, if any appears."""
        context = self.page.context
        for _ in range(checks):
            pages = [p for p in context.pages if not p.is_closed()]
            if len(pages) > before and pages[-1] is not self.page:
                self.page = pages[-1]
                await self.page.set_viewport_size(VIEWPORT)
                await self.page.wait_for_load_state("networkidle")
                logger.info(f"🗂️ Switched to new tab: {self.page.url}")
                return True
            await self.page.wait_for_timeout(1000)
        return False

    async def fill_fund_request(self) -> None:
        s = self.settings
        await fill_combo(self.page, self.catalogue.PROCESS_FIELD, s.process, self.probe_ms * 5, self.settle_ms)
        await fill_combo(self.page, self.catalogue.SHIP_CODE_FIELD, s.ship_code, self.probe_ms * 5, self.settle_ms)
        # Ship code autofills currency and bank fields
        await self.page.wait_for_timeout(self.settle_ms * 2)
        await fill_period(self.page, self.catalogue.PERIOD_FROM_FIELD, s.period_key, self.probe_ms * 5, self.settle_ms)
        await fill_period(self.page, self.catalogue.PERIOD_TO_FIELD, s.period_key, self.probe_ms * 5, self.settle_ms)
        await set_due_date(self.page, self.catalogue, s.effective_due_date, self.probe_ms, self.settle_ms)

    async def save(self, label: str) -> None:
        button = await require(self.page, self.catalogue.SAVE_BUTTON, self.probe_ms * 5)
        await button.click(force=True)
        await self.page.wait_for_timeout(self.settle_ms)
        logger.info(f"💾 {label} saved")

    async def _reload(self) -> None:
        try:
            await self.page.reload(wait_until="networkidle")
        except PlaywrightTimeoutError:
            logger.warning("⚠️ Page did not reach network idle after reload, continuing")
        await self.page.wait_for_timeout(self.settle_ms)

    async def process_document(self, label: str, cascade: extractor.ExtractionCascade, excluded=None) -> DocumentResult:
        """Save the open form, read its number, approve and transfer it, read the number again."""
        slug = label.lower().replace(" ", "-")
        await self.save(label)
        await self.artifacts.capture(self.page, f"{slug}-saved")

        identifier = await capture_after_save(
            self.page, self.catalogue, cascade, excluded=excluded, prefix=self.settings.invoice_prefix, timeout_ms=self.probe_ms
        )
        status = CaptureStatus.UNIQUE if identifier else CaptureStatus.MISSING
        notes: list[str] = []
        logger.info(f"🔢 {label} number after save: {identifier or 'not captured'} ({extractor.describe_format(identifier)})")

        await self._reload()
        state = await WorkflowDriver(self.page, self.catalogue, self.probe_ms, self.settle_ms).run_approval_and_transfer(label)
        await self.artifacts.capture(self.page, f"{slug}-workflow")

        if state is WorkflowState.UNAVAILABLE:
            notes.append("Workflow actions not available")
        elif state is WorkflowState.DRAFT:
            notes.append("Approval was not confirmed")
        else:
            if state is WorkflowState.APPROVED:
                notes.append("Transfer not available after approval")
            polled = await poll_approved_identifier(self.page, self.catalogue, self.policy, excluded=excluded)
            if polled.status is CaptureStatus.UNIQUE:
                if identifier and polled.identifier.value != identifier.value:
                    notes.append(f"Number changed on approval from {identifier.value}")
                identifier, status = polled.identifier, CaptureStatus.UNIQUE
            elif polled.status is CaptureStatus.POSSIBLY_STALE:
                identifier, status = polled.identifier, CaptureStatus.POSSIBLY_STALE
                notes.append(f"Only the excluded number {polled.identifier.value} was visible after approval")

        if identifier and not identifier.well_formed:
            logger.warning(f"⚠️ {label} number {identifier.value} has {extractor.describe_format(identifier)}")
        return DocumentResult(label, identifier, status, state, tuple(notes))

    async def _find_options(self):
        for attempt in range(OPTIONS_ATTEMPTS):
            result = await resolve(self.page, self.catalogue.OPTIONS_BUTTON, self.probe_ms)
            if isinstance(result, Found):
                return result
            if isinstance(result, Fault):
                raise CollaboratorFault(f"{result.target}: {result.reason}")
            logger.info(f"🔍 Options button not visible (attempt {attempt + 1}/{OPTIONS_ATTEMPTS}), scrolling")
            await self.page.evaluate(_SCROLLS[attempt % len(_SCROLLS)])
            await self.page.wait_for_timeout(self.settle_ms)
        return None

    async def create_credit_note(self, excluded=None) -> None:
        options = await self._find_options()
        if options is None:
            logger.info(f"ℹ️ Visible controls: {await describe_visible_controls(self.page)}")
            self.recorder.skip_credit_note("Options menu not available on the Fund Request")
            logger.warning("⚠️ Options button not found, skipping Credit Note")
            return
        await options.locator.click(force=True)
        await self.page.wait_for_timeout(self.settle_ms)

        before = len(self.page.context.pages)
        chosen = await click_target(self.page, self.catalogue.CREATE_CREDIT_NOTE_ITEM, self.probe_ms)
        if isinstance(chosen, Fault):
            raise CollaboratorFault(f"{chosen.target}: {chosen.reason}")
        if not isinstance(chosen, Found):
            self.recorder.skip_credit_note("Create Credit Note not offered in the Options menu")
            logger.warning("⚠️ Create Credit Note not in Options menu, skipping Credit Note")
            return
        await self.page.wait_for_timeout(self.settle_ms)
        await self._adopt_new_tab(before)
        await self.artifacts.capture(self.page, "credit-note-form")

        credit_note = await self.process_document("Credit Note", extractor.CREDIT_NOTE_TEXT, excluded=excluded)
        self.recorder.credit_note = credit_note
        if excluded and credit_note.invoice_number == str(excluded):
            logger.warning(f"⚠️ Credit Note shows the Fund Request number {excluded}")

    async def verify_transferred_listing(self) -> bool:
        """Best-effort look at the Transferred tab of the AR Invoice home."""
        try:
            home = await click_target(self.page, self.catalogue.HOME_BUTTON, self.probe_ms)
            if not isinstance(home, Found):
                await self.page.goto(self.settings.base_url)
            await self.page.wait_for_load_state("networkidle")

            tab = await click_target(self.page, self.catalogue.TRANSFERRED_TAB, self.probe_ms, force=False)
            if not isinstance(tab, Found):
                logger.warning("⚠️ Transferred tab not found")
                return False
            await self.page.wait_for_timeout(self.settle_ms)
            await self.artifacts.capture(self.page, "transferred-tab")

            if not await is_present(self.page, self.catalogue.INVOICE_GRID, self.probe_ms):
                logger.warning("⚠️ No invoice grid on the Transferred tab")
                return False
            rows = await self.page.locator(GRID_ROWS).count()
            logger.info(f"📋 Transferred tab lists {rows} row(s)")
            return rows > 0
        except PlaywrightError as e:
            if is_fault(self.page, e):
                raise CollaboratorFault(str(e)) from e
            logger.warning(f"⚠️ Could not check the Transferred listing: {e}")
            return False

    async def _validate_in_database(self) -> None:
        documents = [self.recorder.fund_request, self.recorder.credit_note]
        for doc in documents:
            if doc is None or not doc.invoice_number:
                continue
            try:
                record = await asyncio.to_thread(self.invoice_db.lookup, doc.invoice_number)
            except SQLAlchemyError as e:
                logger.warning(f"⚠️ Database lookup failed for {doc.invoice_number}: {e}")
                self.recorder.db_validation.append(InvoiceValidation(doc.label, doc.invoice_number, False, error=str(e)))
                continue
            if record is None:
                self.recorder.db_validation.append(InvoiceValidation(doc.label, doc.invoice_number, False, error="Not found"))
                continue
            self.recorder.db_validation.append(
                InvoiceValidation(
                    doc.label,
                    doc.invoice_number,
                    True,
                    status=record.status,
                    invoice_type=record.invoice_type,
                    created=record.created.isoformat() if record.created else None,
                )
            )


def _keeps_trace(settings: Settings, attempt: int) -> bool:
    return settings.trace_mode == "on" or (settings.trace_mode == "on-first-retry" and attempt == 2)


async def _report_setup_failure(reporter, attempt: int, error: Exception) -> ScenarioOutcome:
    recorder = ScenarioRecorder(attempt=attempt)
    recorder.fail(f"Browser setup failed: {type(error).__name__}: {error}")
    outcome = recorder.finish()
    logger.error(f"❌ {outcome.error_message}")
    if reporter is not None:
        try:
            await reporter.send_report(outcome)
        except Exception as e:
            logger.error(f"❌ Reporter failed: {e}")
    return outcome


async def run_browser_scenario(settings: Settings, run_dir: Path, attempt: int = 1, reporter=None, invoice_db=None) -> ScenarioOutcome:
    """Launch Chromium, run one scenario attempt and close everything again.

    A browser that cannot be started still yields a reported Failed outcome.
    """
    catalogue = Catalogue(load_overrides(settings.selector_overrides))
    artifacts = ArtifactStore(run_dir / "screenshots")
    record_video = settings.video_mode in ("on", "retain-on-failure")
    tracing = _keeps_trace(settings, attempt)
    outcome = None

    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=settings.headless, channel=settings.browser_channel)
            try:
                context_args = {"viewport": VIEWPORT}
                if record_video:
                    context_args["record_video_dir"] = str(run_dir / "videos")
                context = await browser.new_context(**context_args)
                if tracing:
                    await context.tracing.start(screenshots=True, snapshots=True)
                page = await context.new_page()

                runner = ScenarioRunner(page, settings, catalogue, reporter, artifacts, invoice_db, attempt)
                try:
                    outcome = await runner.run()
                finally:
                    if tracing:
                        trace_path = run_dir / f"trace-attempt{attempt}.zip"
                        await context.tracing.stop(path=str(trace_path))
                        logger.info(f"🧭 Trace saved: {trace_path}")
                    videos = [pg.video for pg in context.pages if pg.video]
                    await context.close()
            finally:
                await browser.close()

            if settings.video_mode == "retain-on-failure" and outcome.passed:
                for video in videos:
                    await video.delete()
    except Exception as e:
        if outcome is None:
            return await _report_setup_failure(reporter, attempt, e)
        # The scenario already finished and reported; only teardown went wrong
        logger.warning(f"⚠️ Browser teardown failed: {e}")
    return outcome
