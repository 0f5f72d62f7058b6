"""Filling the DevExpress combo boxes and date picker on a document form."""

import logging
from datetime import date

from playwright.async_api import Error as PlaywrightError

from errors import CollaboratorFault, ControlNotFound
from locators import Fault, Found, TargetDescriptor, click_target, resolve
from targets import Catalogue

logger = logging.getLogger(__name__)


async def require(page, descriptor: TargetDescriptor, timeout_ms: int):
    """Resolve a control the scenario cannot do without, or raise."""
    result = await resolve(page, descriptor, timeout_ms)
    if isinstance(result, Found):
        return result.locator
    if isinstance(result, Fault):
        raise CollaboratorFault(f"{descriptor.name}: {result.reason}")
    raise ControlNotFound(descriptor.name, result.tried)


async def fill_combo(page, descriptor: TargetDescriptor, value: str, timeout_ms: int = 2000, settle_ms: int = 1000) -> None:
    """Type value into a combo box and accept the highlighted entry."""
    field = await require(page, descriptor, timeout_ms)
    await field.click(force=True)
    await field.fill(value)
    await page.keyboard.press("Enter")
    await page.wait_for_timeout(settle_ms)
    logger.info(f"✅ {descriptor.name} set to {value!r}")


async def fill_period(page, descriptor: TargetDescriptor, key: str, timeout_ms: int = 2000, settle_ms: int = 1000) -> None:
    """Period combos only filter on typed keys, so type, then pick the first suggestion."""
    field = await require(page, descriptor, timeout_ms)
    await field.click(force=True)
    await field.fill("")
    await field.press_sequentially(key)
    await page.keyboard.press("ArrowDown")
    await page.keyboard.press("Enter")
    await page.wait_for_timeout(settle_ms)
    logger.info(f"✅ {descriptor.name} set from key {key!r}")


async def _typed_date_sticks(field, text: str, expected: tuple[str, ...]) -> bool:
    await field.fill("")
    await field.fill(text)
    try:
        shown = await field.input_value()
    except PlaywrightError:
        # Picker buttons have no value; trust the fill
        return True
    return all(part in shown for part in expected)


async def set_due_date(page, catalogue: Catalogue, due: date, timeout_ms: int = 2000, settle_ms: int = 1000) -> str:
    """Set the due date, returning how it was entered: calendar, us or iso.

    The calendar popup is preferred. When the day cannot be clicked the field is
    typed in US format and checked, then ISO as the last resort.
    """
    field = await require(page, catalogue.DUE_DATE_PICKER, timeout_ms)
    await field.click(force=True)
    await page.wait_for_timeout(settle_ms)

    await click_target(page, catalogue.CALENDAR_BUTTON, timeout_ms)
    day = await click_target(page, catalogue.calendar_day(due.day), timeout_ms)
    if isinstance(day, Found):
        await page.wait_for_timeout(settle_ms)
        logger.info(f"✅ Due date picked from calendar: {due.isoformat()}")
        return "calendar"
    if isinstance(day, Fault):
        raise CollaboratorFault(f"{day.target}: {day.reason}")

    logger.info("🔍 Calendar day not clickable, typing the due date instead")
    us = due.strftime("%m/%d/%Y")
    if await _typed_date_sticks(field, us, (str(due.month), str(due.day))):
        await page.keyboard.press("Enter")
        logger.info(f"✅ Due date typed as {us}")
        return "us"

    iso = due.isoformat()
    await field.fill("")
    await field.fill(iso)
    await page.keyboard.press("Enter")
    logger.warning(f"⚠️ US date format was not accepted; typed {iso}")
    return "iso"
