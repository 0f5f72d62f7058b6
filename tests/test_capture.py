import pytest

from capture import CapturePolicy, CaptureStatus, body_text, capture_after_save, poll_approved_identifier
from errors import CollaboratorFault
from extractor import CREDIT_NOTE_TEXT, FUND_REQUEST_TEXT
from targets import Catalogue

INVOICE_INPUT = 'input[name*="InvoiceNumber" i]'
FAST = CapturePolicy(attempts=3, interval_ms=10, probe_timeout_ms=10)


@pytest.mark.asyncio
async def test_capture_prefers_input_field(page):
    page.add(INVOICE_INPUT, value="ASH25100262")
    page.add("body", text="Invoice Ref.No ASH99999999")
    found = await capture_after_save(page, Catalogue(), FUND_REQUEST_TEXT, timeout_ms=10)
    assert found.value == "ASH25100262"
    assert found.source == "input-field"


@pytest.mark.asyncio
async def test_capture_falls_back_to_page_text(page):
    page.add("body", text="Saved. Invoice Ref.NoASH25100262 created")
    found = await capture_after_save(page, Catalogue(), FUND_REQUEST_TEXT, timeout_ms=10)
    assert found.value == "ASH25100262"
    assert found.tier == "ref-no"


@pytest.mark.asyncio
async def test_capture_reads_banner_elements(page):
    page.add('div:has-text("ShipNet-AR")', text="ShipNet-AR: SMR123456")
    found = await capture_after_save(page, Catalogue(), FUND_REQUEST_TEXT, timeout_ms=10)
    assert found.value == "SMR123456"
    assert not found.well_formed


@pytest.mark.asyncio
async def test_capture_last_resort_is_url(page):
    page.url = "https://app.test/arInvoiceInfo/25100262/edit"
    found = await capture_after_save(page, Catalogue(), FUND_REQUEST_TEXT, prefix="ASH", timeout_ms=10)
    assert found.value == "ASH25100262"
    assert found.source == "url"


@pytest.mark.asyncio
async def test_capture_with_exclusion_skips_previous_document(page):
    page.add(INVOICE_INPUT, value="ASH25100262")
    page.add("body", text="Credit Note for ASH25100262: ASH25100299")
    found = await capture_after_save(page, Catalogue(), CREDIT_NOTE_TEXT, excluded="ASH25100262", timeout_ms=10)
    assert found.value == "ASH25100299"


@pytest.mark.asyncio
async def test_capture_nothing_returns_none(page):
    assert await capture_after_save(page, Catalogue(), FUND_REQUEST_TEXT, timeout_ms=10) is None


@pytest.mark.asyncio
async def test_capture_raises_fault_when_page_closed(page):
    page.closed = True
    with pytest.raises(CollaboratorFault):
        await capture_after_save(page, Catalogue(), FUND_REQUEST_TEXT, timeout_ms=10)


@pytest.mark.asyncio
async def test_poll_returns_unique_identifier(page):
    page.add(INVOICE_INPUT, value="ASH25100299")
    result = await poll_approved_identifier(page, Catalogue(), FAST, excluded="ASH25100262")
    assert result.status is CaptureStatus.UNIQUE
    assert result.identifier.value == "ASH25100299"
    assert page.waits == []


@pytest.mark.asyncio
async def test_poll_reports_possibly_stale_match(page):
    page.add(INVOICE_INPUT, value="ASH25100262")
    result = await poll_approved_identifier(page, Catalogue(), FAST, excluded="ASH25100262")
    assert result.status is CaptureStatus.POSSIBLY_STALE
    assert result.identifier.value == "ASH25100262"
    # waits between attempts only
    assert page.waits == [10, 10]


@pytest.mark.asyncio
async def test_poll_falls_back_to_page_text(page):
    page.add("body", text="Invoice Ref.No: ASH25100299")
    result = await poll_approved_identifier(page, Catalogue(), FAST)
    assert result.status is CaptureStatus.UNIQUE
    assert result.identifier.tier == "ref-no"


@pytest.mark.asyncio
async def test_poll_missing(page):
    result = await poll_approved_identifier(page, Catalogue(), FAST)
    assert result.status is CaptureStatus.MISSING
    assert result.identifier is None


@pytest.mark.asyncio
async def test_body_text_missing_body_is_empty(page):
    assert await body_text(page) == ""
