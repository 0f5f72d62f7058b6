"""Reading invoice numbers off a live document page.

Two moments matter: right after Save, where the number may only be in a
banner or the URL, and after approval, where the final number appears in a
read-only field and may take a few seconds to be populated.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from playwright.async_api import Error as PlaywrightError

import extractor
from errors import CollaboratorFault
from extractor import InvoiceIdentifier
from locators import TargetDescriptor, is_fault
from targets import Catalogue

logger = logging.getLogger(__name__)


class CaptureStatus(str, Enum):
    UNIQUE = "Unique"
    POSSIBLY_STALE = "PossiblyStaleMatch"
    MISSING = "Missing"


@dataclass(frozen=True)
class CaptureResult:
    status: CaptureStatus
    identifier: InvoiceIdentifier | None = None


@dataclass(frozen=True)
class CapturePolicy:
    attempts: int = 3
    interval_ms: int = 3000
    probe_timeout_ms: int = 3000


async def _visible_values(page, descriptor: TargetDescriptor, timeout_ms: int) -> list[str]:
    """Input values of every visible element matched by any candidate, in order."""
    values: list[str] = []
    for candidate in descriptor.candidates:
        try:
            matches = await page.locator(candidate.query).all()
        except PlaywrightError as e:
            if is_fault(page, e):
                raise CollaboratorFault(str(e)) from e
            continue
        for field in matches:
            try:
                if not await field.is_visible():
                    continue
                value = (await field.input_value(timeout=timeout_ms)).strip()
            except PlaywrightError as e:
                if is_fault(page, e):
                    raise CollaboratorFault(str(e)) from e
                continue
            if value:
                values.append(value)
    return values


async def _visible_texts(page, descriptor: TargetDescriptor) -> list[str]:
    texts: list[str] = []
    for candidate in descriptor.candidates:
        try:
            element = page.locator(candidate.query).first
            if not await element.is_visible():
                continue
            text = await element.text_content()
        except PlaywrightError as e:
            if is_fault(page, e):
                raise CollaboratorFault(str(e)) from e
            continue
        if text:
            texts.append(text)
    return texts


async def body_text(page) -> str:
    try:
        return await page.locator("body").text_content() or ""
    except PlaywrightError as e:
        if is_fault(page, e):
            raise CollaboratorFault(str(e)) from e
        logger.debug(f"  Could not read page text: {e}")
        return ""


async def capture_after_save(page, catalogue: Catalogue, cascade: extractor.ExtractionCascade, excluded=None, prefix: str = "ASH", timeout_ms: int = 2000) -> InvoiceIdentifier | None:
    """Find the number a freshly saved document shows.

    Sources in order: the invoice number input, the page text cascade, banner
    elements mentioning ShipNet-AR / Updated Invoice Number, the detail URL.
    """
    values = await _visible_values(page, catalogue.INVOICE_NUMBER_FIELD, timeout_ms)
    found = extractor.extract_from_texts(extractor.ELEMENT_TEXT, values, excluded=excluded, source="input-field")
    if found:
        logger.info(f"✅ Invoice number from input field: {found.value}")
        return found

    found = extractor.extract(cascade, await body_text(page), excluded=excluded)
    if found:
        logger.info(f"✅ Invoice number from page text ({found.tier}): {found.value}")
        return found

    texts = await _visible_texts(page, catalogue.INVOICE_TEXT_ELEMENTS)
    found = extractor.extract_from_texts(extractor.ELEMENT_TEXT, texts, excluded=excluded)
    if found:
        logger.info(f"✅ Invoice number from page element ({found.tier}): {found.value}")
        return found

    found = extractor.identifier_from_url(page.url, prefix=prefix, excluded=excluded)
    if found:
        logger.info(f"✅ Invoice number from URL: {found.value}")
        return found

    logger.warning(f"⚠️ Could not find an invoice number after save (url={page.url})")
    return None


async def poll_approved_identifier(page, catalogue: Catalogue, policy: CapturePolicy, excluded=None) -> CaptureResult:
    """Wait for the approved invoice number, rejecting the excluded one.

    When every sighting equals the excluded identifier the result is
    POSSIBLY_STALE with that value: the field may simply not be refreshed yet,
    and the caller decides what to make of it.
    """
    stale: InvoiceIdentifier | None = None
    for attempt in range(1, policy.attempts + 1):
        logger.info(f"🔄 Attempt {attempt} to read the approved invoice number...")
        values = await _visible_values(page, catalogue.APPROVED_INVOICE_FIELD, policy.probe_timeout_ms)
        # Some forms render the field with a generated name; scan every input as well
        values += await _visible_values(page, catalogue.ALL_INPUTS, policy.probe_timeout_ms)
        for value in values:
            found = extractor.extract(extractor.APPROVED_TEXT, value, source="input-field")
            if not found:
                continue
            if excluded and found.value == str(excluded):
                stale = stale or found
                continue
            logger.info(f"✅ Approved invoice number: {found.value}")
            return CaptureResult(CaptureStatus.UNIQUE, found)
        if attempt < policy.attempts:
            await page.wait_for_timeout(policy.interval_ms)

    found = extractor.extract(extractor.APPROVED_TEXT, await body_text(page), excluded=excluded)
    if found:
        logger.info(f"✅ Approved invoice number from page text ({found.tier}): {found.value}")
        return CaptureResult(CaptureStatus.UNIQUE, found)

    if stale:
        logger.warning(f"⚠️ Only saw {stale.value}, which belongs to the previous document; it may not be refreshed yet")
        return CaptureResult(CaptureStatus.POSSIBLY_STALE, stale)
    logger.warning("⚠️ No approved invoice number found")
    return CaptureResult(CaptureStatus.MISSING)
