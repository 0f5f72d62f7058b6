"""Invoice number extraction from unstructured page text.

An ExtractionCascade is an ordered list of regex rules, tightest first.
extract() walks the rules in order and returns the first capture that is not
the excluded identifier, so a Credit Note never reports its Fund Request's
number just because both appear on the same page.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable

logger = logging.getLogger(__name__)

CANONICAL_FORMAT = re.compile(r"^[A-Z]{3}\d{8}$")

_URL_INVOICE_ID = re.compile(r"/arInvoiceInfo/(\d+)/")


@dataclass(frozen=True)
class ExtractionRule:
    tier: str
    pattern: re.Pattern
    group: int = 1


@dataclass(frozen=True)
class ExtractionCascade:
    name: str
    rules: tuple[ExtractionRule, ...]


@dataclass(frozen=True)
class InvoiceIdentifier:
    value: str
    tier: str
    source: str = "page-text"

    @property
    def well_formed(self) -> bool:
        return bool(CANONICAL_FORMAT.match(self.value))

    def __str__(self) -> str:
        return self.value


def rule(tier: str, pattern: str, group: int = 1) -> ExtractionRule:
    return ExtractionRule(tier, re.compile(pattern), group)


REF_NO = rule("ref-no", r"(?i:Invoice Ref\.No)\s*:?\s*([A-Z]{3}\d{8})")
LABELLED = rule("labelled", r"(?i:(?:Updated )?Invoice Number)[:\s\-]+([A-Z]{3}\d{8})")
CANONICAL = rule("canonical", r"(?<![A-Z])([A-Z]{3}\d{8})(?!\d)")
SHIPNET_AR = rule("shipnet-ar", r"(?i:ShipNet-AR)[:\s]+([A-Z]{2,4}\d{6,})")
UPDATED_LOOSE = rule("updated-loose", r"(?i:Updated Invoice Number)[:\s\-]+([A-Z]{2,4}\d{6,})")
PREFIXED_LOOSE = rule("prefixed-loose", r"(?<![A-Z])([A-Z]{2,4}\d{6,})")

FUND_REQUEST_TEXT = ExtractionCascade(
    "fund-request",
    (REF_NO, LABELLED, CANONICAL, SHIPNET_AR, UPDATED_LOOSE, PREFIXED_LOOSE),
)

CREDIT_NOTE_TEXT = ExtractionCascade(
    "credit-note",
    (REF_NO, CANONICAL, SHIPNET_AR, UPDATED_LOOSE, PREFIXED_LOOSE),
)

ELEMENT_TEXT = ExtractionCascade(
    "element-text",
    (CANONICAL, SHIPNET_AR, UPDATED_LOOSE, PREFIXED_LOOSE),
)

# Once approved the number must be canonical; looser hits are noise
APPROVED_TEXT = ExtractionCascade(
    "approved",
    (REF_NO, LABELLED, CANONICAL),
)


def extract(cascade: ExtractionCascade, text: str | None, excluded=None, source: str = "page-text") -> InvoiceIdentifier | None:
    """Apply cascade to text and return the first acceptable identifier, or None.

    excluded may be an InvoiceIdentifier or a plain string; captures equal to it
    are skipped and the search moves on (next match, then next rule).
    """
    if not text:
        return None
    skip = str(excluded) if excluded else None
    for r in cascade.rules:
        for match in r.pattern.finditer(text):
            value = (match.group(r.group) or "").strip()
            if not value:
                continue
            if value == skip:
                logger.debug(f"  {cascade.name}/{r.tier}: skipping excluded {value}")
                continue
            logger.debug(f"  {cascade.name}/{r.tier}: matched {value}")
            return InvoiceIdentifier(value, r.tier, source)
    return None


def extract_from_texts(cascade: ExtractionCascade, texts: Iterable[str | None], excluded=None, source: str = "element-text") -> InvoiceIdentifier | None:
    """Apply cascade to each candidate text in turn; first identifier wins."""
    for text in texts:
        found = extract(cascade, text, excluded=excluded, source=source)
        if found:
            return found
    return None


def identifier_from_url(url: str, prefix: str = "ASH", excluded=None) -> InvoiceIdentifier | None:
    """Build an identifier from the numeric record id in an invoice detail URL."""
    m = _URL_INVOICE_ID.search(url or "")
    if not m:
        return None
    value = f"{prefix}{m.group(1)}"
    if excluded and value == str(excluded):
        return None
    return InvoiceIdentifier(value, "url", "url")


def describe_format(identifier: InvoiceIdentifier | None) -> str:
    """Human verdict on an identifier's shape, used in logs and the report."""
    if identifier is None:
        return "not captured"
    if identifier.well_formed:
        return "correct 3-letter + 8-digit format"
    if re.match(r"^[A-Z]{2,4}\d+$", identifier.value):
        return "valid prefix but not 8-digit format"
    return "unusual format"
