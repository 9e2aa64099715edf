"""Pydantic schemas for API request/response models."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from labor_billing.calculators.types import EntryFilter, HourKind, Side, UnresolvedReason
from labor_billing.services.billing_service import DocumentContext


# ============================================================================
# Requests
# ============================================================================


class EntrySelection(BaseModel):
    """Which time entries a run covers. Empty lists mean "no restriction"."""

    entry_ids: list[UUID] = Field(default_factory=list)
    person_ids: list[UUID] = Field(default_factory=list)
    project_ids: list[UUID] = Field(default_factory=list)
    start_date: date | None = None
    end_date: date | None = None

    def to_filter(self) -> EntryFilter:
        return EntryFilter(
            entry_ids=tuple(self.entry_ids),
            person_ids=tuple(self.person_ids),
            project_ids=tuple(self.project_ids),
            start_date=self.start_date,
            end_date=self.end_date,
        )


class InvoiceRequest(EntrySelection):
    """Schema for creating invoices."""

    invoice_date: date | None = None
    due_date: date | None = None
    notes: str | None = None

    def to_context(self) -> DocumentContext:
        return DocumentContext(
            document_date=self.invoice_date, due_date=self.due_date, notes=self.notes
        )


class VendorBillRequest(EntrySelection):
    """Schema for creating vendor bills."""

    bill_date: date | None = None
    due_date: date | None = None
    notes: str | None = None
    payee_vendor_id: UUID | None = None

    def to_context(self) -> DocumentContext:
        return DocumentContext(
            document_date=self.bill_date,
            due_date=self.due_date,
            notes=self.notes,
            payee_vendor_id=self.payee_vendor_id,
        )


# ============================================================================
# Responses
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str
    data: dict[str, list[str]] = Field(default_factory=dict)


class EntryResponse(BaseModel):
    """Schema for a selectable time entry."""

    model_config = ConfigDict(from_attributes=True)

    entry_id: UUID
    person_id: UUID
    person_name: str
    project_id: UUID
    project_name: str | None = None
    customer_name: str | None = None
    entry_date: date
    hours: Decimal


class LineItemResponse(BaseModel):
    """Schema for a draft or committed line item."""

    model_config = ConfigDict(from_attributes=True)

    kind: HourKind
    product_name: str
    description: str
    quantity: Decimal
    rate: Decimal
    total: Decimal
    entry_ids: list[UUID]


class DraftResponse(BaseModel):
    """Schema for a document draft."""

    model_config = ConfigDict(from_attributes=True)

    side: Side
    subject_id: UUID | None = None
    subject_name: str
    period_start: date
    period_end: date
    lines: list[LineItemResponse]
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    total_hours: Decimal
    entry_ids: list[UUID]


class BlockerResponse(BaseModel):
    """Schema for a person with no usable rate."""

    model_config = ConfigDict(from_attributes=True)

    person_id: UUID
    person_name: str
    reason: UnresolvedReason
    project_name: str | None = None
    entry_ids: list[UUID]


class InvoicePreviewResponse(BaseModel):
    """Schema for invoice preview."""

    draft: DraftResponse
    fingerprint: str
    blockers: list[BlockerResponse]
    zero_rate_lines: list[str]
    skipped_entry_ids: list[UUID]
    customer_error: str | None = None
    can_submit: bool


class VendorBillPreviewResponse(BaseModel):
    """Schema for vendor bill preview."""

    drafts: list[DraftResponse]
    unresolved: list[BlockerResponse]
    zero_rate_people: list[str]
    skipped_entry_ids: list[UUID]


class DocumentResponse(BaseModel):
    """Schema for a committed document."""

    model_config = ConfigDict(from_attributes=True)

    side: Side
    document_id: UUID
    number: str
    subject_id: UUID | None = None
    subject_name: str
    total: Decimal
    entries_linked: int
    fingerprint: str
    external_ref: str | None = None
    sync_warning: str | None = None


class FailedDocumentResponse(BaseModel):
    """Schema for a document that was not created."""

    model_config = ConfigDict(from_attributes=True)

    subject_id: UUID | None = None
    subject_name: str
    code: str
    message: str
    retryable: bool


class FanOutResponse(BaseModel):
    """Schema for a multi-document run."""

    model_config = ConfigDict(from_attributes=True)

    side: Side
    succeeded: list[DocumentResponse]
    failed: list[FailedDocumentResponse]
    unresolved: list[BlockerResponse]
    skipped_entry_ids: list[UUID]
    skipped_message: str | None = None
    total_amount: Decimal


class SyncResponse(BaseModel):
    """Schema for an accounting sync retry."""

    model_config = ConfigDict(from_attributes=True)

    provider: str
    external_ref: str | None = None
    message: str = ""
