"""Approve and Transfer a saved document through its Workflow dropdown.

Workflow controls are permission-gated: a user without approval rights simply
never sees the button. That is reported as WorkflowState.UNAVAILABLE, and no
browser error raised in here escapes to the scenario.
"""

import logging
from enum import Enum

from playwright.async_api import Error as PlaywrightError

from locators import Found, TargetDescriptor, click_target, dismiss_overlays, is_present
from targets import Catalogue

logger = logging.getLogger(__name__)

# Outcomes of one Workflow → action → Confirm stage
UNREACHABLE = "unreachable"
UNCONFIRMED = "unconfirmed"
CONFIRMED = "confirmed"


class WorkflowState(str, Enum):
    DRAFT = "Draft"
    APPROVED = "Approved"
    TRANSFERRED = "Transferred"
    UNAVAILABLE = "Unavailable"


class WorkflowDriver:
    def __init__(self, page, catalogue: Catalogue | None = None, probe_timeout_ms: int = 5000, settle_ms: int = 2000):
        self.page = page
        self.catalogue = catalogue or Catalogue()
        self.probe_timeout_ms = probe_timeout_ms
        self.settle_ms = settle_ms

    async def _stage(self, action: TargetDescriptor, label: str) -> str:
        """Workflow → action → Confirm; returns UNREACHABLE, UNCONFIRMED or CONFIRMED."""
        opened = await click_target(self.page, self.catalogue.WORKFLOW_BUTTON, self.probe_timeout_ms)
        if not isinstance(opened, Found):
            logger.warning(f"⚠️ Workflow button not available for {label}")
            return UNREACHABLE
        await self.page.wait_for_timeout(self.settle_ms)

        chosen = await click_target(self.page, action, self.probe_timeout_ms, force=False)
        if not isinstance(chosen, Found):
            logger.warning(f"⚠️ {action.name} not found in Workflow dropdown for {label}")
            return UNREACHABLE
        await self.page.wait_for_timeout(self.settle_ms)

        confirmed = await click_target(self.page, self.catalogue.CONFIRM_BUTTON, self.probe_timeout_ms, force=False)
        if not isinstance(confirmed, Found):
            logger.warning(f"⚠️ No Confirm button after {action.name} for {label}")
            return UNCONFIRMED
        await self.page.wait_for_timeout(self.settle_ms)
        return CONFIRMED

    async def run_approval_and_transfer(self, document_label: str) -> WorkflowState:
        logger.info(f"🔄 Executing workflow steps for {document_label}...")
        state = WorkflowState.DRAFT
        try:
            await dismiss_overlays(self.page, self.catalogue.OVERLAY_CLOSE)

            approval = await self._stage(self.catalogue.APPROVE_ITEM, document_label)
            if approval == UNREACHABLE:
                logger.info(f"ℹ️ {document_label} saved, but workflow actions are not available to this user")
                return WorkflowState.UNAVAILABLE
            if approval == UNCONFIRMED:
                return state
            state = WorkflowState.APPROVED
            logger.info(f"✅ {document_label} approved and confirmed")

            if await self._stage(self.catalogue.TRANSFER_ITEM, document_label) != CONFIRMED:
                return state
            state = WorkflowState.TRANSFERRED
            logger.info(f"✅ {document_label} transferred and confirmed")

            if await is_present(self.page, self.catalogue.TRANSFERRED_STATUS, self.probe_timeout_ms):
                logger.info(f"✅ {document_label} status changed to 'Transferred'")
            else:
                logger.warning(f"⚠️ {document_label} status may not have changed to 'Transferred'")
        except PlaywrightError as e:
            logger.warning(f"⚠️ Could not complete workflow steps for {document_label}: {e}")
            if state is WorkflowState.DRAFT:
                return WorkflowState.UNAVAILABLE
        return state
