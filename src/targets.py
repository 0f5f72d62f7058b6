"""Selector catalogue for the AR Invoice screens.

Each entry lists every selector known to reach the control, most specific
first. Project overrides (data/selectors_overrides.json, or SELECTOR_OVERRIDES)
map a target name to extra selectors that are tried before the built-in ones.
"""

import json
import logging
from pathlib import Path

from locators import SelectorCandidate, TargetDescriptor, target

logger = logging.getLogger(__name__)

DEFAULT_OVERRIDES_PATH = Path("data/selectors_overrides.json")


def menu_item(label: str) -> TargetDescriptor:
    """Dropdown entry of a DevExpress menu, e.g. Approve under Workflow."""
    return target(
        f"{label.replace(' ', '')}MenuItem",
        f'.dxbl-menu-dropdown-item:has-text("{label}")',
        f'li:has-text("{label}")',
        f'[role="menuitem"]:has-text("{label}")',
        f'button:has-text("{label}")',
        f'a:has-text("{label}")',
    )


def calendar_day(day: int) -> TargetDescriptor:
    # Day cells match on the whole label so 5 never hits 15 or 25. Grids pad with
    # the previous month's high days up front and the next month's low days at the
    # end, so high days take the last match and low days the first.
    return target(
        "CalendarDay",
        f'button:text-is("{day}")',
        f'td:text-is("{day}")',
        f'[role="gridcell"]:text-is("{day}")',
        f'.day:text-is("{day}")',
        f'[data-day="{day}"]',
        pick="last" if day > 15 else "first",
    )


USERNAME_FIELD = target(
    "UsernameField",
    'role=textbox[name="Enter Username"]',
    "input[name*='user' i]",
    "input[type='email']",
    "#username",
)

PASSWORD_FIELD = target(
    "PasswordField",
    'role=textbox[name="Enter Password"]',
    "input[type='password']",
    "#password",
)

LOGIN_BUTTON = target(
    "LoginButton",
    'role=button[name="Login"]',
    "button[type='submit']",
    "button:has-text('Log in')",
)

NEW_MENU = target(
    "NewMenu",
    'button[aria-label="New"]',
    'button:has-text("New")',
)

RELEASE_NOTES = target("ReleaseNotes", "text=Release Notes")

CLOSE_BUTTON = target("CloseButton", 'button:has-text("Close")')

OVERLAY_CLOSE = target(
    "OverlayClose",
    'button[aria-label*="Close" i]',
    'button:has-text("×")',
    'button:has-text("Close")',
)

PROCESS_FIELD = target("ProcessField", 'input[name="cboProcess"]', 'input[id*="Process" i]')

SHIP_CODE_FIELD = target("ShipCodeField", 'input[name="cboShipCode"]', 'input[id*="ShipCode" i]')

PERIOD_FROM_FIELD = target("PeriodFromField", 'input[name="cboPeriodFrom"]', 'input[id*="PeriodFrom" i]')

PERIOD_TO_FIELD = target("PeriodToField", 'input[name="cboPeriodTo"]', 'input[id*="PeriodTo" i]')

DUE_DATE_PICKER = TargetDescriptor(
    "DueDatePicker",
    tuple(
        SelectorCandidate(q, require_enabled=True)
        for q in (
            'input[type="date"]',
            'input[placeholder*="due date" i]',
            'input[placeholder*="date" i]',
            'input[name*="due" i]',
            'input[name*="date" i]',
            'input[id*="due" i]',
            'input[id*="date" i]',
            'label:has-text("Due Date") + input',
            'label:has-text("Due Date") ~ input',
            'input[aria-labelledby*="due" i]',
            'button[aria-label*="calendar" i]',
            'button[aria-label*="date" i]',
            'button[title*="calendar" i]',
            'button[title*="date" i]',
            ".calendar-icon",
            ".date-picker",
            '[class*="calendar"]',
            '[class*="date-picker"]',
            'text="Due Date" >> xpath=.. >> input',
        )
    ),
)

CALENDAR_BUTTON = target(
    "CalendarButton",
    'button[aria-label*="calendar" i]',
    'button[title*="calendar" i]',
    ".calendar-icon",
    '[class*="calendar"]',
)

SAVE_BUTTON = target("SaveButton", 'button:has-text("Save")', 'role=button[name="Save"]')

INVOICE_NUMBER_FIELD = target(
    "InvoiceNumberField",
    'input[name*="InvoiceNumber" i]',
    'input[name*="InvoiceNo" i]',
    'input[placeholder*="Invoice" i]',
    'label:has-text("Invoice Number") + input',
    'label:has-text("Invoice Number") ~ input',
    'input[value^="ASH"]',
    '[data-field*="invoice" i] input',
    ".invoice-number input",
)

# After approval the number lands in a disabled field next to Currency
APPROVED_INVOICE_FIELD = target(
    "ApprovedInvoiceField",
    'input[name*="InvoiceNumber" i]',
    'input[name*="InvoiceNo" i]',
    'input[name*="txtInvoiceNumber" i]',
    'label:has-text("Invoice Number") + input',
    'label:has-text("Invoice Number") ~ input',
    'label:has-text("Invoice No") + input',
    'input[value*="ASH"]',
    'input[value*="SMRS"]',
    'input.form-control[value*="ASH"]',
    'input.estmatefieldInput[value*="ASH"]',
)

ALL_INPUTS = target("AnyInput", "input")

INVOICE_TEXT_ELEMENTS = target(
    "InvoiceTextElement",
    r"text=/ShipNet-AR[:\s]+[A-Z]+\d+/i",
    "text=/Updated Invoice Number/i",
    '[class*="alert"]:has-text("ShipNet-AR")',
    '[class*="notification"]:has-text("ShipNet-AR")',
    '[style*="background"]:has-text("ShipNet-AR")',
    '[style*="background"]:has-text("Updated Invoice Number")',
    'div:has-text("ShipNet-AR")',
    'span:has-text("ShipNet-AR")',
    'p:has-text("ShipNet-AR")',
)

WORKFLOW_BUTTON = target(
    "WorkflowButton",
    'button:has-text("Workflow")',
    'button[aria-label*="Workflow" i]',
    '[role="button"]:has-text("Workflow")',
)

APPROVE_ITEM = menu_item("Approve")

TRANSFER_ITEM = menu_item("Transfer")

CONFIRM_BUTTON = target("ConfirmButton", 'button:has-text("Confirm")', 'role=button[name="Confirm"]')

TRANSFERRED_STATUS = target("TransferredStatus", "text=Transferred")

OPTIONS_BUTTON = target(
    "OptionsButton",
    'button:has-text("Options")',
    'button[aria-label*="Options" i]',
    'button[title*="Options" i]',
    '[role="button"]:has-text("Options")',
    'a:has-text("Options")',
    ".options-button",
    "#options-button",
    'button:has-text("Option")',
)

CREATE_CREDIT_NOTE_ITEM = target(
    "CreateCreditNoteMenuItem",
    'li:has-text("Create Credit Note")',
    '[role="menuitem"]:has-text("Create Credit Note")',
    '.dxbl-menu-dropdown-item:has-text("Create Credit Note")',
    'button:has-text("Create Credit Note")',
    'a:has-text("Create Credit Note")',
    'li:has-text("Credit Note")',
    '[role="menuitem"]:has-text("Credit Note")',
    '.dxbl-menu-dropdown-item:has-text("Credit Note")',
)

HOME_BUTTON = target(
    "ArInvoiceHome",
    'a:has-text("AR Invoice")',
    'button:has-text("AR Invoice")',
    '[aria-label*="AR Invoice" i]',
    ".logo + a",
    ".logo + button",
    ".navbar-brand",
    '[href*="ARInvoiceHome" i]',
    '[href="/"]',
)

TRANSFERRED_TAB = target(
    "TransferredTab",
    '[role="tab"]:has-text("Transferred")',
    'button:has-text("Transferred")',
    'a:has-text("Transferred")',
    'text="Transferred"',
)

INVOICE_GRID = target("InvoiceGrid", ".dxbl-grid", '[role="grid"]', "table")

GRID_ROWS = 'tr[role="row"], .dxbl-grid-data-row'


def load_overrides(path: Path | None = None) -> dict[str, list[str]]:
    """Read user selector overrides; a missing or unreadable file means none."""
    path = path or DEFAULT_OVERRIDES_PATH
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"⚠️ Ignoring selector overrides in {path}: {e}")
        return {}
    if not isinstance(raw, dict):
        logger.warning(f"⚠️ Ignoring selector overrides in {path}: expected an object")
        return {}
    return {str(k): [str(s) for s in v] for k, v in raw.items() if isinstance(v, list)}


class Catalogue:
    """Lookup of targets by attribute name with user overrides applied."""

    def __init__(self, overrides: dict[str, list[str]] | None = None):
        self.overrides = overrides or {}

    def apply(self, descriptor: TargetDescriptor) -> TargetDescriptor:
        extra = self.overrides.get(descriptor.name)
        if not extra:
            return descriptor
        return descriptor.with_priority(extra)

    def __getattr__(self, name: str) -> TargetDescriptor:
        value = globals().get(name)
        if not isinstance(value, TargetDescriptor):
            raise AttributeError(name)
        return self.apply(value)

    def menu_item(self, label: str) -> TargetDescriptor:
        return self.apply(menu_item(label))

    def calendar_day(self, day: int) -> TargetDescriptor:
        return self.apply(calendar_day(day))
