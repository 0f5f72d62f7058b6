"""The record of one scenario run.

The orchestrator writes into a ScenarioRecorder as it goes; finish() freezes it
into a ScenarioOutcome, which is what reporters, results.json and the CLI see.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from capture import CaptureStatus
from extractor import InvoiceIdentifier, describe_format
from workflow import WorkflowState

PASSED = "Passed"
FAILED = "Failed"


@dataclass(frozen=True)
class DocumentResult:
    label: str
    identifier: InvoiceIdentifier | None = None
    capture_status: CaptureStatus = CaptureStatus.MISSING
    workflow_state: WorkflowState = WorkflowState.DRAFT
    notes: tuple[str, ...] = ()

    @property
    def invoice_number(self) -> str | None:
        return self.identifier.value if self.identifier else None

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "invoice_number": self.invoice_number,
            "tier": self.identifier.tier if self.identifier else None,
            "source": self.identifier.source if self.identifier else None,
            "well_formed": self.identifier.well_formed if self.identifier else False,
            "format": describe_format(self.identifier),
            "capture_status": self.capture_status.value,
            "workflow_state": self.workflow_state.value,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class InvoiceValidation:
    label: str
    invoice_number: str
    validated: bool
    status: str | None = None
    invoice_type: str | None = None
    created: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ScenarioOutcome:
    status: str
    duration_s: float
    fund_request: DocumentResult
    credit_note: DocumentResult | None
    credit_note_skip_reason: str | None
    error_message: str | None
    artifacts: tuple[Path, ...]
    timestamp: str
    transferred_listing_verified: bool
    db_validation: tuple[InvoiceValidation, ...] = ()
    attempt: int = 1

    @property
    def passed(self) -> bool:
        return self.status == PASSED

    @property
    def identifiers_distinct(self) -> bool | None:
        """None while either number is missing, so uniqueness is not judged."""
        if not self.credit_note or not self.fund_request.invoice_number or not self.credit_note.invoice_number:
            return None
        return self.fund_request.invoice_number != self.credit_note.invoice_number

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "attempt": self.attempt,
            "duration_s": round(self.duration_s, 2),
            "timestamp": self.timestamp,
            "fund_request": self.fund_request.to_dict(),
            "credit_note": self.credit_note.to_dict() if self.credit_note else None,
            "credit_note_skip_reason": self.credit_note_skip_reason,
            "identifiers_distinct": self.identifiers_distinct,
            "transferred_listing_verified": self.transferred_listing_verified,
            "error": self.error_message,
            "db_validation": [v.__dict__ for v in self.db_validation],
            "screenshots": [str(p) for p in self.artifacts],
        }


@dataclass
class ScenarioRecorder:
    attempt: int = 1
    fund_request: DocumentResult = field(default_factory=lambda: DocumentResult("Fund Request"))
    credit_note: DocumentResult | None = None
    credit_note_skip_reason: str | None = None
    error_message: str | None = None
    transferred_listing_verified: bool = False
    db_validation: list[InvoiceValidation] = field(default_factory=list)
    started: float = field(default_factory=time.monotonic)
    _outcome: ScenarioOutcome | None = field(default=None, repr=False)

    def fail(self, message: str) -> None:
        # Keep the first failure; later ones are usually consequences of it
        if not self.error_message:
            self.error_message = message or "Unknown error"

    def skip_credit_note(self, reason: str) -> None:
        self.credit_note_skip_reason = reason

    def finish(self, artifacts: list[Path] | tuple[Path, ...] = ()) -> ScenarioOutcome:
        """Freeze the record. Later calls return the same outcome."""
        if self._outcome is None:
            self._outcome = ScenarioOutcome(
                status=FAILED if self.error_message else PASSED,
                duration_s=time.monotonic() - self.started,
                fund_request=self.fund_request,
                credit_note=self.credit_note,
                credit_note_skip_reason=self.credit_note_skip_reason,
                error_message=self.error_message,
                artifacts=tuple(artifacts),
                timestamp=datetime.now().isoformat(timespec="seconds"),
                transferred_listing_verified=self.transferred_listing_verified,
                db_validation=tuple(self.db_validation),
                attempt=self.attempt,
            )
        return self._outcome
