"""Billing API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from labor_billing.api.dependencies import Billing
from labor_billing.api.schemas import (
    BlockerResponse,
    DocumentResponse,
    DraftResponse,
    EntryResponse,
    EntrySelection,
    ErrorResponse,
    FanOutResponse,
    InvoicePreviewResponse,
    InvoiceRequest,
    SyncResponse,
    VendorBillPreviewResponse,
    VendorBillRequest,
)
from labor_billing.calculators.types import EntryFilter, Side

router = APIRouter(prefix="/billing", tags=["billing"])


# ============================================================================
# Entry selection
# ============================================================================


@router.get("/entries/unbilled", response_model=list[EntryResponse])
async def list_unbilled_entries(
    billing: Billing,
    side: Side,
    start_date: date | None = None,
    end_date: date | None = None,
    project_id: Annotated[list[UUID] | None, Query()] = None,
) -> list[EntryResponse]:
    """List entries not yet linked on one side."""
    entries = await billing.load_entries(
        EntryFilter(
            project_ids=tuple(project_id or ()),
            start_date=start_date,
            end_date=end_date,
        ),
        side=side,
    )
    return [EntryResponse.model_validate(entry) for entry in entries]


# ============================================================================
# Invoices
# ============================================================================


@router.post(
    "/invoices/preview",
    response_model=InvoicePreviewResponse,
)
async def preview_invoice(billing: Billing, payload: EntrySelection) -> InvoicePreviewResponse:
    """Preview the invoice for a selection without writing anything."""
    entries = await billing.load_entries(payload.to_filter())
    preview = await billing.preview_invoice(entries)
    return InvoicePreviewResponse(
        draft=DraftResponse.model_validate(preview.draft),
        fingerprint=preview.fingerprint,
        blockers=[BlockerResponse.model_validate(b) for b in preview.blockers],
        zero_rate_lines=[line.product_name for line in preview.zero_rate_lines],
        skipped_entry_ids=list(preview.skipped_entry_ids),
        customer_error=preview.customer_error.message if preview.customer_error else None,
        can_submit=preview.can_submit,
    )


@router.post(
    "/invoices",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def create_invoice(billing: Billing, payload: InvoiceRequest) -> DocumentResponse:
    """Create one invoice and link its entries."""
    entries = await billing.load_entries(payload.to_filter())
    result = await billing.create_invoice(entries, payload.to_context())
    return DocumentResponse.model_validate(result)


@router.post(
    "/customer-invoices",
    response_model=FanOutResponse,
    responses={400: {"model": ErrorResponse}},
)
async def create_customer_invoices(billing: Billing, payload: InvoiceRequest) -> FanOutResponse:
    """Create one invoice per customer; failures are reported per customer."""
    entries = await billing.load_entries(payload.to_filter())
    result = await billing.create_customer_invoices(entries, payload.to_context())
    return FanOutResponse.model_validate(result)


# ============================================================================
# Vendor bills
# ============================================================================


@router.post(
    "/vendor-bills/preview",
    response_model=VendorBillPreviewResponse,
)
async def preview_vendor_bills(
    billing: Billing, payload: VendorBillRequest
) -> VendorBillPreviewResponse:
    """Preview one vendor bill per person."""
    entries = await billing.load_entries(payload.to_filter())
    preview = await billing.preview_vendor_bills(entries, payload.payee_vendor_id)
    return VendorBillPreviewResponse(
        drafts=[DraftResponse.model_validate(draft) for draft in preview.drafts],
        unresolved=[BlockerResponse.model_validate(u) for u in preview.unresolved],
        zero_rate_people=preview.zero_rate_people,
        skipped_entry_ids=list(preview.skipped_entry_ids),
    )


@router.post(
    "/vendor-bills",
    response_model=FanOutResponse,
    responses={400: {"model": ErrorResponse}},
)
async def create_vendor_bills(billing: Billing, payload: VendorBillRequest) -> FanOutResponse:
    """Create one vendor bill per person; failures are reported per person."""
    entries = await billing.load_entries(payload.to_filter())
    result = await billing.create_vendor_bills(entries, payload.to_context())
    return FanOutResponse.model_validate(result)


# ============================================================================
# Accounting sync
# ============================================================================


@router.post(
    "/sync/{side}/{document_id}",
    response_model=SyncResponse,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def retry_sync(billing: Billing, side: Side, document_id: UUID) -> SyncResponse:
    """Push a committed document to the accounting system again."""
    receipt = await billing.retry_accounting_sync(side, document_id)
    return SyncResponse.model_validate(receipt)
